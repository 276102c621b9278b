"""
CFGMATCH TEMPLATE - Pattern Graphs with a Dedicated Entry and Exit

A Template is a small control-flow shape (if, if/else, loop, ...) with
exactly one entry node and one exit node. Incoming edges to the entry and
outgoing edges from the exit are ignored when searching for occurrences of
the template: real control flow enters and leaves the pattern from
arbitrary surrounding code.

Entry and exit are identified by the node "label" attribute, e.g. the
if-then shape:

    A -> B, A -> C, B -> C
    A [label="entry"]
    C [label="exit"]

Composition, not inheritance: a Template HAS a GraphView plus the two
designated indices. The graph itself is never mutated.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from core.graph import ControlFlowGraph, GraphError, GraphView, NodeNotFoundError
from core.ontology import ENTRY_LABEL, EXIT_LABEL, LABEL_KEY

logger = logging.getLogger(__name__)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class TemplateError(GraphError):
    """Base exception for template construction failures."""
    pass


class MissingEntryError(TemplateError):
    """Raised when no node carries the entry label."""
    def __init__(self):
        super().__init__("unable to locate entry node")


class MissingExitError(TemplateError):
    """Raised when no node carries the exit label."""
    def __init__(self):
        super().__init__("unable to locate exit node")


class DuplicateEntryError(TemplateError):
    """Raised when a second node carries the entry label."""
    def __init__(self, previous: int, new: int):
        self.previous = previous
        self.new = new
        super().__init__(
            f"redefinition of entry node; previous index ({previous}), new index ({new})"
        )


class DuplicateExitError(TemplateError):
    """Raised when a second node carries the exit label."""
    def __init__(self, previous: int, new: int):
        self.previous = previous
        self.new = new
        super().__init__(
            f"redefinition of exit node; previous index ({previous}), new index ({new})"
        )


class InvalidTemplateError(TemplateError):
    """Raised when entry == exit but the template has more than one node."""
    def __init__(self, entry: int, exit: int, node_count: int):
        self.entry = entry
        self.exit = exit
        self.node_count = node_count
        super().__init__(
            f"entry and exit are the same node ({entry}) in a template of "
            f"{node_count} nodes; internal structure is ambiguous"
        )


# =============================================================================
# TEMPLATE
# =============================================================================

@dataclass(frozen=True)
class Template:
    """
    Immutable (graph, entry, exit) triple plus derived search structure.

    Derived on construction:
    - nodes: template node indices in index order
    - relevant_edges: pattern edges minus those entering the entry or
      leaving the exit (a self-loop on either is excluded)
    - exploration_order: deterministic order in which the matcher binds
      template nodes; every connected node after the entry has an earlier
      neighbor along a relevant edge
    """
    graph: GraphView
    entry: int
    exit: int
    name: str = ""

    nodes: Tuple[int, ...] = field(init=False, repr=False, compare=False)
    relevant_edges: FrozenSet[Tuple[int, int]] = field(init=False, repr=False, compare=False)
    exploration_order: Tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        nodes = tuple(self.graph.node_indices())
        for node in (self.entry, self.exit):
            if not self.graph.has_node(node):
                raise NodeNotFoundError(node)
        if self.entry == self.exit and len(nodes) > 1:
            raise InvalidTemplateError(self.entry, self.exit, len(nodes))

        relevant = frozenset(
            (u, v)
            for u in nodes
            for v in self.graph.successors(u)
            if not self._excluded(u, v)
        )

        object.__setattr__(self, "nodes", nodes)
        object.__setattr__(self, "relevant_edges", relevant)
        object.__setattr__(self, "exploration_order", _exploration_order(nodes, self.entry, relevant))

    # =========================================================================
    # CONSTRUCTION HELPERS
    # =========================================================================

    @classmethod
    def from_edges(
        cls,
        edges: Iterable[Tuple[str, str]],
        entry: str,
        exit: str,
        nodes: Optional[Iterable[str]] = None,
        name: str = "",
    ) -> "Template":
        """
        Build a template from named edges, labelling `entry` and `exit`.

        Usage:
            tpl = Template.from_edges([("A", "B"), ("B", "C")], entry="A", exit="C")

        Raises:
            InvalidTemplateError: entry == exit in a template of more than one node
        """
        if entry == exit:
            # One node cannot carry both labels; designate it directly
            graph = ControlFlowGraph.from_edges(edges, nodes=[entry, *(nodes or ())])
            index = graph.index_of(entry)
            return cls(graph=graph, entry=index, exit=index, name=name)

        attrs = {entry: {LABEL_KEY: ENTRY_LABEL}}
        attrs.setdefault(exit, {})[LABEL_KEY] = EXIT_LABEL
        graph = ControlFlowGraph.from_edges(edges, attrs=attrs, nodes=nodes)
        return load_template(graph, name=name)

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def size(self) -> int:
        return len(self.nodes)

    def _excluded(self, source: int, target: int) -> bool:
        return target == self.entry or source == self.exit

    def is_excluded_pair(self, source: int, target: int) -> bool:
        """True if an edge source -> target is outside the matchable structure."""
        return self._excluded(source, target)

    def has_relevant_edge(self, source: int, target: int) -> bool:
        return (source, target) in self.relevant_edges


def _exploration_order(
    nodes: Tuple[int, ...],
    entry: int,
    relevant: FrozenSet[Tuple[int, int]],
) -> Tuple[int, ...]:
    """
    Breadth-first from the entry along relevant outgoing edges, then
    undirected expansion for nodes only reachable against edge direction,
    then any disconnected remainder in index order.
    """
    succ: Dict[int, Set[int]] = {n: set() for n in nodes}
    both: Dict[int, Set[int]] = {n: set() for n in nodes}
    for u, v in relevant:
        if u != v:
            succ[u].add(v)
            both[u].add(v)
            both[v].add(u)

    order: List[int] = [entry]
    seen: Set[int] = {entry}

    def bfs(start: Iterable[int], neighbors: Dict[int, Set[int]]) -> None:
        queue = deque(start)
        while queue:
            u = queue.popleft()
            for v in sorted(neighbors[u]):
                if v not in seen:
                    seen.add(v)
                    order.append(v)
                    queue.append(v)

    bfs([entry], succ)
    bfs(list(order), both)
    for node in nodes:
        if node not in seen:
            seen.add(node)
            order.append(node)
            bfs([node], both)

    return tuple(order)


# =============================================================================
# TEMPLATE LOADER
# =============================================================================

def load_template(graph: GraphView, name: str = "") -> Template:
    """
    Locate the entry and exit nodes of `graph` and return a Template.

    Scans every node; a node whose "label" attribute is exactly "entry"
    (resp. "exit") designates the entry (resp. exit). Other labels are
    ignored. The graph is not mutated.

    Raises:
        DuplicateEntryError / DuplicateExitError: label found twice
        MissingEntryError / MissingExitError: label not found
        InvalidTemplateError: see Template
    """
    entry: Optional[int] = None
    exit: Optional[int] = None

    for node in graph.node_indices():
        label = graph.get_attr(node, LABEL_KEY)
        if label is None:
            continue
        if label == ENTRY_LABEL:
            if entry is not None:
                raise DuplicateEntryError(entry, node)
            entry = node
        elif label == EXIT_LABEL:
            if exit is not None:
                raise DuplicateExitError(exit, node)
            exit = node

    if entry is None:
        raise MissingEntryError()
    if exit is None:
        raise MissingExitError()

    template = Template(graph=graph, entry=entry, exit=exit, name=name)
    logger.debug(
        "Loaded template %r: %d nodes, entry=%d, exit=%d, %d relevant edges",
        name, template.size, entry, exit, len(template.relevant_edges),
    )
    return template
