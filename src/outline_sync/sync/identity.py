"""Identity resolution between freshly parsed nodes and persisted siblings.

Two rules, applied in order:

1. **Source id** -- a parsed node carrying a native ``source_id`` matches
   the persisted sibling with the same ``source_id``.  Nothing else is
   tried for such a node: an unknown id means a new node.
2. **Title fallback** -- only for parsed nodes without a ``source_id``
   (plain Markdown outlines, Longform list beats).  The node matches a
   persisted sibling without a ``source_id`` whose title (content, for
   beats) is identical.  Several hits are tie-broken by identical ordinal
   position; failing that the lowest position wins and the match is marked
   ambiguous.

Every persisted node is claimed at most once per resolver, so two parsed
siblings with the same title never collapse onto one persisted node.

Rename-and-reorder is undecidable for the fallback rule.  When a fallback
node finds no match but an unclaimed persisted sibling sits at its
position, the resolver reports a *position conflict* instead of guessing;
the differ surfaces it as an ``IdentityAmbiguity`` and treats the node as
new.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Union

from ..models import Beat, Chapter, ParsedBeat, ParsedChapter, ParsedScene, Scene

ParsedNode = Union[ParsedChapter, ParsedScene, ParsedBeat]


class PersistedNode(Protocol):
    """The persisted attributes the resolver looks at."""

    id: str
    position: int
    source_id: str | None


class MatchRule(str, Enum):
    """Which rule produced a match."""

    SOURCE_ID = "source_id"
    TITLE = "title"
    TITLE_POSITION = "title_position"


@dataclass(frozen=True, slots=True)
class Match:
    """A resolved identity.

    Attributes:
        persisted_id: Id of the matched persisted node.
        rule: The rule that matched.
        ambiguous: True when several candidates fit and none shared the
            parsed node's position.
        candidate_ids: Every candidate that fitted, in position order.
    """

    persisted_id: str
    rule: MatchRule
    ambiguous: bool = False
    candidate_ids: tuple[str, ...] = ()


def node_key(node: ParsedNode | Chapter | Scene | Beat) -> str:
    """Comparison text of a node: beat content, otherwise its title."""
    if isinstance(node, (ParsedBeat, Beat)):
        return node.content
    return node.title


class IdentityResolver:
    """Match parsed nodes to persisted nodes, claiming each at most once."""

    def __init__(self) -> None:
        self._claimed: set[str] = set()

    def is_claimed(self, persisted_id: str) -> bool:
        return persisted_id in self._claimed

    def resolve(
        self,
        parsed_node: ParsedNode,
        position: int,
        candidates: Sequence[PersistedNode],
    ) -> Match | None:
        """Resolve one parsed node against its persisted siblings.

        Args:
            parsed_node: The freshly parsed node.
            position: Its ordinal position among its parsed siblings.
            candidates: Persisted siblings in the same parent scope.

        Returns:
            The ``Match``, or ``None`` when the node is new.
        """
        if parsed_node.source_id is not None:
            for candidate in candidates:
                if (
                    candidate.source_id == parsed_node.source_id
                    and candidate.id not in self._claimed
                ):
                    self._claimed.add(candidate.id)
                    return Match(candidate.id, MatchRule.SOURCE_ID)
            return None

        key = node_key(parsed_node)
        hits = sorted(
            (
                c
                for c in candidates
                if c.source_id is None
                and c.id not in self._claimed
                and node_key(c) == key  # type: ignore[arg-type]
            ),
            key=lambda c: c.position,
        )
        if not hits:
            return None

        candidate_ids = tuple(c.id for c in hits)
        if len(hits) == 1:
            chosen, rule, ambiguous = hits[0], MatchRule.TITLE, False
        else:
            same_position = next((c for c in hits if c.position == position), None)
            if same_position is not None:
                chosen, rule, ambiguous = same_position, MatchRule.TITLE_POSITION, False
            else:
                chosen, rule, ambiguous = hits[0], MatchRule.TITLE, True
        self._claimed.add(chosen.id)
        return Match(chosen.id, rule, ambiguous, candidate_ids)

    def resolve_siblings(
        self,
        parsed_nodes: Sequence[ParsedNode],
        candidates: Sequence[PersistedNode],
    ) -> list[Match | None]:
        """Resolve a whole sibling list.

        Source id matches are resolved first so that a fallback node can
        never claim a persisted node another sibling matches by id.
        """
        matches: list[Match | None] = [None] * len(parsed_nodes)
        for index, node in enumerate(parsed_nodes):
            if node.source_id is not None:
                matches[index] = self.resolve(node, index, candidates)
        for index, node in enumerate(parsed_nodes):
            if node.source_id is None:
                matches[index] = self.resolve(node, index, candidates)
        return matches

    def position_conflict(
        self,
        parsed_node: ParsedNode,
        position: int,
        candidates: Sequence[PersistedNode],
    ) -> PersistedNode | None:
        """Unclaimed fallback candidate at *position*, if any.

        Only meaningful after the whole sibling list has been resolved and
        only for parsed nodes without a ``source_id`` that found no match.
        """
        if parsed_node.source_id is not None:
            return None
        return next(
            (
                c
                for c in candidates
                if c.position == position
                and c.source_id is None
                and c.id not in self._claimed
            ),
            None,
        )
