"""
CFGMATCH SCHEMAS - The Grammar of the Matcher

If ontology.py is the Dictionary (defining the words we can use),
schemas.py is the Grammar (defining how we structure values).

This module defines the value types that flow through a search:
- NodeData: The payload attached to every graph node
- Match: A completed, adjacency-consistent template -> target mapping
- MatchConfig: Search parameters (policy, step bound, anchor order)

Design Principles:
1. STRICT TYPING: msgspec.Struct with no silent type coercion
2. KW_ONLY: Enforce keyword arguments to prevent positional mix-ups
3. IMMUTABLE RESULTS: A Match is frozen once the search hands it out
"""
import msgspec
from typing import Optional, Dict, Tuple, FrozenSet, Any

from core.ontology import (
    LABEL_KEY,
    MatchPolicy,
    AnchorOrder,
    coerce_policy,
    coerce_anchor_order,
)


# =============================================================================
# NODE DATA (The Graph Payload)
# =============================================================================

class NodeData(msgspec.Struct, kw_only=True, frozen=False):
    """
    The payload attached to every node in the rustworkx graph.

    Architecture Notes:
    - `name`: Human-readable block name ("A", "bb_12"), NOT the node identity.
      Identity is the rustworkx integer index.
    - `attrs`: Open-ended string attributes. Keys are unique per node;
      insertion order is irrelevant.
    """
    name: str
    attrs: Dict[str, str] = msgspec.field(default_factory=dict)

    @property
    def label(self) -> Optional[str]:
        return self.attrs.get(LABEL_KEY)

    def get(self, key: str) -> Optional[str]:
        return self.attrs.get(key)


# =============================================================================
# MATCH (The Search Result)
# =============================================================================

class Match(msgspec.Struct, kw_only=True, frozen=True):
    """
    A complete mapping from template node indices to target node indices.

    `pairs` is sorted by template index so two matches with the same mapping
    compare equal regardless of the order in which the search bound nodes.
    """
    anchor: int                           # Target node bound to the template entry
    pairs: Tuple[Tuple[int, int], ...]    # (template_node, target_node)
    entry: int                            # Template entry index
    exit: int                             # Template exit index

    @classmethod
    def from_mapping(cls, mapping: Dict[int, int], entry: int, exit: int) -> "Match":
        return cls(
            anchor=mapping[entry],
            pairs=tuple(sorted(mapping.items())),
            entry=entry,
            exit=exit,
        )

    @property
    def mapping(self) -> Dict[int, int]:
        """The mapping as a fresh dict (template -> target)."""
        return dict(self.pairs)

    @property
    def target_nodes(self) -> FrozenSet[int]:
        return frozenset(t for _, t in self.pairs)

    @property
    def entry_target(self) -> int:
        return self.anchor

    @property
    def exit_target(self) -> int:
        return self[self.exit]

    def __getitem__(self, template_node: int) -> int:
        for u, t in self.pairs:
            if u == template_node:
                return t
        raise KeyError(template_node)

    def __len__(self) -> int:
        return len(self.pairs)

    def overlaps(self, other: "Match") -> bool:
        """True if the two matches share at least one target node."""
        return not self.target_nodes.isdisjoint(other.target_nodes)

    def to_dict(self) -> Dict[str, Any]:
        return msgspec.to_builtins(self)


# =============================================================================
# MATCH CONFIG
# =============================================================================

class MatchConfig(msgspec.Struct, kw_only=True, frozen=True):
    """
    Parameters of a search.

    Attributes:
        policy: "first", "all" or "disjoint" (see ontology.MatchPolicy)
        max_steps: Upper bound on candidate checks. None = unbounded.
            Exceeding it aborts the search with SearchAbortedError.
        anchor_order: "index" (target iteration order) or "rpo"
            (reverse post-order from rpo_root)
        rpo_root: Root block for "rpo" ordering. None = lowest node index.
        strict_boundary: If True, a match must also be closed: target edges
            may only enter the region at the entry image and only leave it
            from the exit image.
    """
    policy: str = MatchPolicy.ALL.value
    max_steps: Optional[int] = None
    anchor_order: str = AnchorOrder.INDEX.value
    rpo_root: Optional[int] = None
    strict_boundary: bool = False

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ValueError: If any parameter is invalid
        """
        coerce_policy(self.policy)
        coerce_anchor_order(self.anchor_order)
        if self.max_steps is not None and self.max_steps <= 0:
            raise ValueError(f"max_steps must be positive or None, got {self.max_steps}")

    def with_policy(self, policy) -> "MatchConfig":
        """Return a copy with a different policy."""
        return msgspec.structs.replace(self, policy=coerce_policy(policy).value)
