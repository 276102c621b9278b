"""
CFGMATCH RESULTS - The Match Result Set

Holds the matches discovered by a search, in discovery order, under the
policy that produced them. No deduplication beyond what the policy dictates:
ALL keeps overlapping matches, DISJOINT never produces them.

An empty result set is the "searched and found nothing" answer. It is
falsy, and it is never an exception.
"""
import threading
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional

import polars as pl

from core.ontology import MatchPolicy, coerce_policy
from core.schemas import Match


class MatchResultSet:
    """
    Ordered collection of Match values.

    append() takes a lock so worker threads searching disjoint anchor
    partitions can publish into one set. Everything else is a plain read.

    Usage:
        results = matcher.match(policy="all")
        if not results:
            ...  # no occurrence
        for match in results:
            print(match.anchor, match.mapping)
    """

    def __init__(self, policy=MatchPolicy.ALL, matches: Optional[Iterable[Match]] = None):
        self.policy: MatchPolicy = coerce_policy(policy)
        self._matches: List[Match] = list(matches or ())
        self._lock = threading.Lock()
        self.steps: int = 0
        self.anchors_searched: int = 0

    # =========================================================================
    # MUTATION
    # =========================================================================

    def append(self, match: Match) -> None:
        with self._lock:
            self._matches.append(match)

    def extend(self, matches: Iterable[Match]) -> None:
        with self._lock:
            self._matches.extend(matches)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def first(self) -> Optional[Match]:
        """First match in discovery order, or None."""
        return self._matches[0] if self._matches else None

    def anchors(self) -> List[int]:
        """Anchor of each match, in discovery order."""
        return [m.anchor for m in self._matches]

    def target_nodes(self) -> FrozenSet[int]:
        """Union of target nodes covered by all matches."""
        covered = set()
        for match in self._matches:
            covered.update(match.target_nodes)
        return frozenset(covered)

    def is_disjoint(self) -> bool:
        """True if no two matches share a target node."""
        seen = set()
        for match in self._matches:
            nodes = match.target_nodes
            if not seen.isdisjoint(nodes):
                return False
            seen.update(nodes)
        return True

    def mappings(self) -> List[Dict[int, int]]:
        return [m.mapping for m in self._matches]

    # =========================================================================
    # EXPORT
    # =========================================================================

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._matches]

    def to_polars(self) -> pl.DataFrame:
        """
        Long-format export: one row per (match, template node).

        Columns: match_index, anchor, template_node, target_node
        """
        rows = [
            (i, m.anchor, u, t)
            for i, m in enumerate(self._matches)
            for u, t in m.pairs
        ]
        return pl.DataFrame(
            {
                "match_index": [r[0] for r in rows],
                "anchor": [r[1] for r in rows],
                "template_node": [r[2] for r in rows],
                "target_node": [r[3] for r in rows],
            },
            schema={
                "match_index": pl.Int64,
                "anchor": pl.Int64,
                "template_node": pl.Int64,
                "target_node": pl.Int64,
            },
        )

    # =========================================================================
    # CONTAINER PROTOCOL
    # =========================================================================

    def __iter__(self) -> Iterator[Match]:
        return iter(list(self._matches))

    def __len__(self) -> int:
        return len(self._matches)

    def __bool__(self) -> bool:
        return bool(self._matches)

    def __getitem__(self, index: int) -> Match:
        return self._matches[index]

    def __repr__(self) -> str:
        return (
            f"MatchResultSet(policy={self.policy.value}, matches={len(self)}, "
            f"steps={self.steps})"
        )
