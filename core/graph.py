"""
CFGMATCH GRAPH - The Graph Abstraction

The matcher never touches rustworkx directly. It talks to a GraphView:
a node set with stable integer identities, directed edge membership,
successor/predecessor queries and attribute lookup by key.

Architecture (The Bridge Pattern):
  Matcher / Template Loader
  - Uses integer node indices and GraphView queries only

  Bridge Layer (This File)
  - ControlFlowGraph: GraphView over rustworkx.PyDiGraph
  - _name_map: Dict[str, int]  (block name -> index)
  - _inv_map: Dict[int, str]   (index -> block name)

  Rust Layer (rustworkx.PyDiGraph)
  - Integer indices, never renumbered after creation
  - Parallel edges allowed (multigraph); matching treats them as one

Thread Safety:
  Reads are safe to share between worker threads. Mutation while a
  search is in flight is not supported.
"""
import rustworkx as rx
from typing import Dict, List, Optional, Set, Tuple, Iterable, Protocol, runtime_checkable

from core.schemas import NodeData


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class GraphError(Exception):
    """Base exception for graph and matching operations."""
    pass


class NodeNotFoundError(GraphError):
    """Raised when a node index or name is not in the graph."""
    def __init__(self, node):
        self.node = node
        super().__init__(f"Node not found: {node}")


class DuplicateNodeError(GraphError):
    """Raised when attempting to add a node with an existing name."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Node already exists: {name}")


# =============================================================================
# GRAPH VIEW (The Capability Interface)
# =============================================================================

@runtime_checkable
class GraphView(Protocol):
    """
    Read-only capabilities the core needs from a graph.

    Any object providing these methods can be matched against; the core
    makes no assumption about how nodes, edges or attributes are stored.
    """

    def node_indices(self) -> List[int]:
        ...

    def has_node(self, node: int) -> bool:
        ...

    def has_edge(self, source: int, target: int) -> bool:
        ...

    def successors(self, node: int) -> Set[int]:
        ...

    def predecessors(self, node: int) -> Set[int]:
        ...

    def get_attr(self, node: int, key: str) -> Optional[str]:
        ...


# =============================================================================
# CONTROL FLOW GRAPH (rustworkx-backed GraphView)
# =============================================================================

class ControlFlowGraph:
    """
    Directed control-flow graph backed by rustworkx.

    Usage:
        cfg = ControlFlowGraph()
        a = cfg.add_node("A", {"label": "entry"})
        b = cfg.add_node("B")
        cfg.add_edge(a, b)

        # Or in one step from block names
        cfg = ControlFlowGraph.from_edges(
            [("A", "B"), ("B", "C")],
            attrs={"A": {"label": "entry"}, "C": {"label": "exit"}},
        )
    """

    def __init__(self, multigraph: bool = True):
        """
        Args:
            multigraph: If True, allow parallel edges between the same blocks
                        (e.g. both arms of a conditional jumping to one target).
        """
        self._graph: rx.PyDiGraph = rx.PyDiGraph(multigraph=multigraph)
        self._name_map: Dict[str, int] = {}
        self._inv_map: Dict[int, str] = {}

    @classmethod
    def from_edges(
        cls,
        edges: Iterable[Tuple[str, str]],
        attrs: Optional[Dict[str, Dict[str, str]]] = None,
        nodes: Optional[Iterable[str]] = None,
        multigraph: bool = True,
    ) -> "ControlFlowGraph":
        """
        Build a graph from (source_name, target_name) pairs.

        Nodes are created in first-seen order: first the optional `nodes`
        sequence (useful for isolated blocks or to fix index order), then the
        endpoints of `edges`.

        Args:
            edges: (source, target) block names
            attrs: Optional block name -> attribute dict
            nodes: Optional explicit node names, created first
            multigraph: Allow parallel edges
        """
        attrs = attrs or {}
        cfg = cls(multigraph=multigraph)

        def ensure(name: str) -> int:
            idx = cfg._name_map.get(name)
            if idx is None:
                idx = cfg.add_node(name, attrs.get(name))
            return idx

        for name in nodes or ():
            ensure(name)
        for source, target in edges:
            cfg.add_edge(ensure(source), ensure(target))

        unknown = set(attrs) - set(cfg._name_map)
        if unknown:
            raise NodeNotFoundError(sorted(unknown)[0])

        return cfg

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def node_count(self) -> int:
        return self._graph.num_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.num_edges()

    @property
    def rx_graph(self) -> rx.PyDiGraph:
        """The underlying rustworkx graph (read-only use)."""
        return self._graph

    # =========================================================================
    # MUTATION
    # =========================================================================

    def add_node(self, name: str, attrs: Optional[Dict[str, str]] = None) -> int:
        """
        Add a block.

        Raises:
            DuplicateNodeError: If a block with this name exists
        """
        if name in self._name_map:
            raise DuplicateNodeError(name)
        idx = self._graph.add_node(NodeData(name=name, attrs=dict(attrs or {})))
        self._name_map[name] = idx
        self._inv_map[idx] = name
        return idx

    def add_edge(self, source: int, target: int) -> int:
        """Add a directed edge; returns the rustworkx edge index."""
        self._require(source)
        self._require(target)
        return self._graph.add_edge(source, target, None)

    def set_attr(self, node: int, key: str, value: str) -> None:
        self._require(node)
        self._graph[node].attrs[key] = value

    # =========================================================================
    # GRAPH VIEW
    # =========================================================================

    def node_indices(self) -> List[int]:
        return sorted(self._graph.node_indices())

    def has_node(self, node: int) -> bool:
        return node in self._inv_map

    def has_edge(self, source: int, target: int) -> bool:
        return self._graph.has_edge(source, target)

    def successors(self, node: int) -> Set[int]:
        self._require(node)
        return set(self._graph.successor_indices(node))

    def predecessors(self, node: int) -> Set[int]:
        self._require(node)
        return set(self._graph.predecessor_indices(node))

    def get_attr(self, node: int, key: str) -> Optional[str]:
        self._require(node)
        return self._graph[node].get(key)

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def index_of(self, name: str) -> int:
        try:
            return self._name_map[name]
        except KeyError:
            raise NodeNotFoundError(name) from None

    def name_of(self, node: int) -> str:
        self._require(node)
        return self._inv_map[node]

    def node_data(self, node: int) -> NodeData:
        self._require(node)
        return self._graph[node]

    def edges(self) -> List[Tuple[int, int]]:
        """All edges as (source, target), parallel edges repeated."""
        return list(self._graph.edge_list())

    def edge_set(self) -> Set[Tuple[int, int]]:
        return set(self._graph.edge_list())

    def _require(self, node: int) -> None:
        if node not in self._inv_map:
            raise NodeNotFoundError(node)

    def __contains__(self, node: int) -> bool:
        return self.has_node(node)

    def __len__(self) -> int:
        return self.node_count

    def __repr__(self) -> str:
        return f"ControlFlowGraph(nodes={self.node_count}, edges={self.edge_count})"


# =============================================================================
# TRAVERSAL HELPERS (GraphView-generic)
# =============================================================================

def reverse_post_order(graph: GraphView, root: Optional[int] = None) -> List[int]:
    """
    Reverse post-order of `graph` from `root`.

    Successors are visited in ascending index order so the result is
    deterministic. Nodes unreachable from the root are appended in index
    order, so every node appears exactly once.

    Args:
        graph: Any GraphView
        root: Start block. None = lowest node index.
    """
    nodes = graph.node_indices()
    if not nodes:
        return []
    if root is None:
        root = nodes[0]
    if not graph.has_node(root):
        raise NodeNotFoundError(root)

    visited = {root}
    post: List[int] = []
    # Explicit stack of (node, remaining successors) avoids recursion limits
    stack = [(root, iter(sorted(graph.successors(root))))]
    while stack:
        node, children = stack[-1]
        for child in children:
            if child not in visited:
                visited.add(child)
                stack.append((child, iter(sorted(graph.successors(child)))))
                break
        else:
            stack.pop()
            post.append(node)

    order = post[::-1]
    order.extend(n for n in nodes if n not in visited)
    return order
