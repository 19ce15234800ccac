"""Tests for IdentityResolver.

Covers:
- Source id matching; an unknown source id means a new node
- Title fallback only between nodes without source ids
- Duplicate titles tie-broken by position, else lowest position (ambiguous)
- Each persisted node claimed at most once
- Source id matches resolved before fallback matches
- Position conflicts for unmatched fallback nodes
"""

from __future__ import annotations

from dataclasses import dataclass

from outline_sync.models import Beat, ParsedBeat, ParsedChapter, ParsedScene
from outline_sync.sync.identity import IdentityResolver, MatchRule, node_key


@dataclass
class _Node:
    """Minimal persisted node for the resolver."""

    id: str
    title: str
    position: int
    source_id: str | None = None


def _chapter(title: str, source_id: str | None = None) -> ParsedChapter:
    return ParsedChapter(title=title, source_id=source_id)


class TestSourceId:
    def test_match_by_source_id(self):
        candidates = [_Node("a", "Old title", 0, "10"), _Node("b", "Other", 1, "11")]
        match = IdentityResolver().resolve(_chapter("New title", "11"), 0, candidates)
        assert match is not None
        assert match.persisted_id == "b"
        assert match.rule is MatchRule.SOURCE_ID
        assert not match.ambiguous

    def test_unknown_source_id_is_new(self):
        candidates = [_Node("a", "Act 1", 0, "10")]
        assert IdentityResolver().resolve(_chapter("Act 1", "99"), 0, candidates) is None

    def test_source_id_node_never_title_matches(self):
        candidates = [_Node("a", "Act 1", 0, None)]
        assert IdentityResolver().resolve(_chapter("Act 1", "10"), 0, candidates) is None


class TestTitleFallback:
    def test_unique_title(self):
        candidates = [_Node("a", "Act 1", 0), _Node("b", "Act 2", 1)]
        match = IdentityResolver().resolve(_chapter("Act 2"), 5, candidates)
        assert match is not None
        assert match.persisted_id == "b"
        assert match.rule is MatchRule.TITLE

    def test_persisted_with_source_id_not_a_candidate(self):
        candidates = [_Node("a", "Act 1", 0, "10")]
        assert IdentityResolver().resolve(_chapter("Act 1"), 0, candidates) is None

    def test_title_is_case_sensitive(self):
        candidates = [_Node("a", "Act 1", 0)]
        assert IdentityResolver().resolve(_chapter("act 1"), 0, candidates) is None

    def test_duplicate_titles_same_position(self):
        candidates = [_Node("a", "Interlude", 0), _Node("b", "Interlude", 2)]
        match = IdentityResolver().resolve(_chapter("Interlude"), 2, candidates)
        assert match is not None
        assert match.persisted_id == "b"
        assert match.rule is MatchRule.TITLE_POSITION
        assert not match.ambiguous
        assert match.candidate_ids == ("a", "b")

    def test_duplicate_titles_lowest_position_ambiguous(self):
        candidates = [_Node("b", "Interlude", 3), _Node("a", "Interlude", 1)]
        match = IdentityResolver().resolve(_chapter("Interlude"), 0, candidates)
        assert match is not None
        assert match.persisted_id == "a"
        assert match.ambiguous
        assert match.candidate_ids == ("a", "b")

    def test_beats_match_on_content(self):
        candidates = [Beat(id="x", scene_id="s", content="Hamlet waits", position=0)]
        match = IdentityResolver().resolve(ParsedBeat(content="Hamlet waits"), 0, candidates)
        assert match is not None
        assert match.persisted_id == "x"


class TestClaiming:
    def test_each_persisted_node_claimed_once(self):
        candidates = [_Node("a", "Interlude", 0)]
        resolver = IdentityResolver()
        first = resolver.resolve(_chapter("Interlude"), 0, candidates)
        second = resolver.resolve(_chapter("Interlude"), 1, candidates)
        assert first is not None and first.persisted_id == "a"
        assert second is None
        assert resolver.is_claimed("a")

    def test_duplicates_map_one_to_one(self):
        candidates = [_Node("a", "Interlude", 0), _Node("b", "Interlude", 1)]
        matches = IdentityResolver().resolve_siblings(
            [_chapter("Interlude"), _chapter("Interlude")], candidates
        )
        assert [m.persisted_id for m in matches] == ["a", "b"]

    def test_source_ids_resolved_first(self):
        candidates = [_Node("a", "Act 1", 0, "10"), _Node("b", "Act 2", 1)]
        parsed = [_chapter("Act 2"), _chapter("Renamed", "10")]
        matches = IdentityResolver().resolve_siblings(parsed, candidates)
        assert matches[0] is not None and matches[0].persisted_id == "b"
        assert matches[1] is not None and matches[1].rule is MatchRule.SOURCE_ID


class TestPositionConflict:
    def test_unclaimed_sibling_at_position(self):
        candidates = [_Node("a", "Old name", 0)]
        resolver = IdentityResolver()
        parsed = _chapter("New name")
        assert resolver.resolve(parsed, 0, candidates) is None
        conflict = resolver.position_conflict(parsed, 0, candidates)
        assert conflict is not None and conflict.id == "a"

    def test_no_conflict_for_source_id_nodes(self):
        candidates = [_Node("a", "Old", 0)]
        parsed = _chapter("New", "10")
        assert IdentityResolver().position_conflict(parsed, 0, candidates) is None

    def test_claimed_sibling_is_no_conflict(self):
        candidates = [_Node("a", "Same", 0)]
        resolver = IdentityResolver()
        resolver.resolve(_chapter("Same"), 0, candidates)
        assert resolver.position_conflict(_chapter("Other"), 0, candidates) is None


def test_node_key():
    assert node_key(ParsedBeat(content="beat text")) == "beat text"
    assert node_key(ParsedScene(title="Scene")) == "Scene"
