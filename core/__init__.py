"""
CFGMATCH CORE - Central exports for the matching engine.

This module provides access to:
- Graph abstraction (GraphView, ControlFlowGraph)
- Templates and the template loader
- The subgraph matcher and its result set
- Standard control-flow primitives
"""

from core.ontology import MatchPolicy, AnchorOrder, SearchEventType
from core.schemas import NodeData, Match, MatchConfig
from core.graph import (
    GraphError,
    NodeNotFoundError,
    DuplicateNodeError,
    GraphView,
    ControlFlowGraph,
    reverse_post_order,
)
from core.template import (
    Template,
    TemplateError,
    MissingEntryError,
    MissingExitError,
    DuplicateEntryError,
    DuplicateExitError,
    InvalidTemplateError,
    load_template,
)
from core.results import MatchResultSet
from core.matcher import (
    SubgraphMatcher,
    SearchAbortedError,
    find_matches,
    find_first_match,
    is_valid_match,
    is_closed_region,
)
from core.parallel import ParallelMatcher
from core.primitives import PRIMITIVES, get_primitive, all_primitives

__all__ = [
    # Vocabulary
    "MatchPolicy",
    "AnchorOrder",
    "SearchEventType",
    # Values
    "NodeData",
    "Match",
    "MatchConfig",
    # Graph
    "GraphError",
    "NodeNotFoundError",
    "DuplicateNodeError",
    "GraphView",
    "ControlFlowGraph",
    "reverse_post_order",
    # Templates
    "Template",
    "TemplateError",
    "MissingEntryError",
    "MissingExitError",
    "DuplicateEntryError",
    "DuplicateExitError",
    "InvalidTemplateError",
    "load_template",
    # Matching
    "MatchResultSet",
    "SubgraphMatcher",
    "SearchAbortedError",
    "find_matches",
    "find_first_match",
    "is_valid_match",
    "is_closed_region",
    "ParallelMatcher",
    # Primitives
    "PRIMITIVES",
    "get_primitive",
    "all_primitives",
]
