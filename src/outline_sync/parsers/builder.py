"""Mutable drafts that parsers fill in before freezing the canonical document.

Parsers accumulate chapters, scenes and beats into these drafts while
scanning a source and only call ``freeze()`` once the whole input has been
consumed, so a failure half way through never leaks a partial document.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..models import ParsedBeat, ParsedChapter, ParsedScene


@dataclass
class SceneDraft:
    title: str
    source_id: str | None = None
    synopsis: str | None = None
    beats: list[ParsedBeat] = field(default_factory=list)

    def add_beat(self, content: str, source_id: str | None = None) -> None:
        content = content.strip()
        if content:
            self.beats.append(ParsedBeat(content=content, source_id=source_id))

    def freeze(self) -> ParsedScene:
        return ParsedScene(
            title=self.title,
            synopsis=self.synopsis,
            source_id=self.source_id,
            beats=list(self.beats),
        )


@dataclass
class ChapterDraft:
    title: str
    source_id: str | None = None
    is_part: bool = False
    scenes: list[SceneDraft] = field(default_factory=list)

    def freeze(self) -> ParsedChapter:
        return ParsedChapter(
            title=self.title,
            source_id=self.source_id,
            is_part=self.is_part,
            scenes=[scene.freeze() for scene in self.scenes],
        )
