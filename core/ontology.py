"""
CFGMATCH ONTOLOGY - The Dictionary of the Matcher

If schemas.py is the Grammar (how values are structured),
ontology.py is the Dictionary (the words we can use).

This module defines:
- Reserved attribute vocabulary (the "label" key, "entry" / "exit" values)
- Enums: MatchPolicy, AnchorOrder, SearchEventType

Key Principle: the template's SHAPE is the pattern. The only node
attributes the core ever reads are the reserved entry/exit labels;
everything else on a node belongs to later structuring passes.
"""
from enum import Enum


# =============================================================================
# RESERVED LABELS
# =============================================================================

LABEL_KEY = "label"      # Attribute key read by the template loader
ENTRY_LABEL = "entry"    # Exact, case-sensitive
EXIT_LABEL = "exit"      # Exact, case-sensitive


# =============================================================================
# ENUMS (The Vocabulary)
# =============================================================================

class MatchPolicy(str, Enum):
    """How the matcher continues once a complete mapping is found."""
    FIRST = "first"          # Stop at the first match
    ALL = "all"              # Enumerate every match, overlaps included
    DISJOINT = "disjoint"    # Greedy: first match per anchor, no shared target nodes


class AnchorOrder(str, Enum):
    """Order in which target nodes are tried as images of the template entry."""
    INDEX = "index"          # Target node iteration order
    RPO = "rpo"              # Reverse post-order from a root block


class SearchEventType(str, Enum):
    """Kinds of events recorded by the search logger."""
    SEARCH_STARTED = "search_started"
    ANCHOR_STARTED = "anchor_started"
    MATCH_FOUND = "match_found"
    SEARCH_ABORTED = "search_aborted"
    SEARCH_FINISHED = "search_finished"


def coerce_policy(policy) -> MatchPolicy:
    """Accept a MatchPolicy or its string value."""
    if isinstance(policy, MatchPolicy):
        return policy
    try:
        return MatchPolicy(policy)
    except ValueError:
        valid = [p.value for p in MatchPolicy]
        raise ValueError(f"policy must be one of {valid}, got {policy!r}") from None


def coerce_anchor_order(order) -> AnchorOrder:
    """Accept an AnchorOrder or its string value."""
    if isinstance(order, AnchorOrder):
        return order
    try:
        return AnchorOrder(order)
    except ValueError:
        valid = [o.value for o in AnchorOrder]
        raise ValueError(f"anchor_order must be one of {valid}, got {order!r}") from None
