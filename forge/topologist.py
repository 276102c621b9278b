"""
CFGMATCH.FORGE.TOPOLOGIST - Control-Flow Graph Generator

Generates target control-flow graphs for tests and benchmarks, with
deterministic seeding.

Topology Types:
1. STRUCTURED: A chain of nested-free regions (sequence, if/then, if/else,
   pre-tested and post-tested loops). Every region is recorded, so a test
   knows which template occurrences must be found.
2. RANDOM: Erdos-Renyi G(n, p) digraph (rustworkx generator). Used as an
   unstructured stress input and for brute-force cross-checks.

Example Usage:
    from forge.topologist import CFGGenerator, CFGConfig, CFGTopologies

    gen = CFGGenerator(seed=42)
    cfg = gen.generate(CFGConfig(topology_type=CFGTopologies.STRUCTURED, num_blocks=200))
    for shape, blocks in gen.regions:
        ...

    # Or use factory functions
    from forge.topologist import create_random_cfg
    cfg = create_random_cfg(num_blocks=8, edge_probability=0.3, seed=7)
"""

import random
from enum import Enum
from typing import List, Optional, Tuple

import msgspec
import rustworkx as rx

from core.graph import ControlFlowGraph


# =============================================================================
# TOPOLOGY TYPES ENUM
# =============================================================================

class CFGTopologies(str, Enum):
    """Supported target graph shapes."""
    STRUCTURED = "structured"
    RANDOM = "random"


class RegionShape(str, Enum):
    """Regions emitted by the structured generator."""
    SEQ = "seq"
    IF_THEN = "if_then"
    IF_ELSE = "if_else"
    PRE_LOOP = "pre_loop"
    POST_LOOP = "post_loop"


# =============================================================================
# CONFIGURATION SCHEMA
# =============================================================================

class CFGConfig(msgspec.Struct, kw_only=True, frozen=True):
    """
    Configuration for CFG generation.

    Attributes:
        topology_type: "structured" or "random"
        num_blocks: Minimum number of blocks (structured may add up to 2 more
            to close its last region); exact for random
        branch_probability: Structured: chance a region is a conditional
        loop_probability: Structured: chance a region is a loop
        edge_probability: Random: probability of each directed edge
    """
    topology_type: str
    num_blocks: int
    branch_probability: float = 0.4
    loop_probability: float = 0.2
    edge_probability: float = 0.2

    def validate(self) -> None:
        """
        Raises:
            ValueError: If any parameter is invalid
        """
        valid_types = [t.value for t in CFGTopologies]
        if self.topology_type not in valid_types:
            raise ValueError(
                f"topology_type must be one of {valid_types}, got {self.topology_type}"
            )
        if self.num_blocks < 1:
            raise ValueError(f"num_blocks must be >= 1, got {self.num_blocks}")
        for name in ("branch_probability", "loop_probability", "edge_probability"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{name} must be between 0.0 and 1.0, got {value}")
        if self.branch_probability + self.loop_probability > 1.0:
            raise ValueError(
                "branch_probability + loop_probability must be <= 1.0, got "
                f"{self.branch_probability + self.loop_probability}"
            )


# =============================================================================
# GENERATOR
# =============================================================================

class CFGGenerator:
    """
    Seeded factory for target control-flow graphs.

    After a STRUCTURED generate(), `regions` lists (shape, block indices) for
    every region in creation order. Block indices are listed entry first and
    exit last, matching the node order of the corresponding primitive.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = random.Random(seed)
        self.regions: List[Tuple[str, Tuple[int, ...]]] = []

    def generate(self, config: CFGConfig) -> ControlFlowGraph:
        """
        Raises:
            ValueError: If configuration is invalid
        """
        config.validate()

        if config.topology_type == CFGTopologies.STRUCTURED:
            return self._generate_structured(config)
        elif config.topology_type == CFGTopologies.RANDOM:
            return self._generate_random(config)
        else:
            raise ValueError(f"Unknown topology type: {config.topology_type}")

    def _generate_structured(self, config: CFGConfig) -> ControlFlowGraph:
        """
        Chain regions one after another. Each region starts at the exit
        block of the previous one.
        """
        cfg = ControlFlowGraph()
        rng = self._rng
        self.regions = []

        def new_block() -> int:
            return cfg.add_node(f"b{cfg.node_count}")

        current = new_block()
        while cfg.node_count < config.num_blocks:
            roll = rng.random()
            if roll < config.loop_probability:
                if rng.random() < 0.5:
                    # current -> header <-> body, header -> exit (attached next)
                    header, body = new_block(), new_block()
                    exit_block = new_block()
                    cfg.add_edge(current, header)
                    cfg.add_edge(header, body)
                    cfg.add_edge(body, header)
                    cfg.add_edge(header, exit_block)
                    self.regions.append((RegionShape.PRE_LOOP.value, (current, header, body, exit_block)))
                    current = exit_block
                else:
                    body, exit_block = new_block(), new_block()
                    cfg.add_edge(current, body)
                    cfg.add_edge(body, body)
                    cfg.add_edge(body, exit_block)
                    self.regions.append((RegionShape.POST_LOOP.value, (current, body, exit_block)))
                    current = exit_block
            elif roll < config.loop_probability + config.branch_probability:
                if rng.random() < 0.5:
                    then_block, join = new_block(), new_block()
                    cfg.add_edge(current, then_block)
                    cfg.add_edge(current, join)
                    cfg.add_edge(then_block, join)
                    self.regions.append((RegionShape.IF_THEN.value, (current, then_block, join)))
                    current = join
                else:
                    then_block, else_block, join = new_block(), new_block(), new_block()
                    cfg.add_edge(current, then_block)
                    cfg.add_edge(current, else_block)
                    cfg.add_edge(then_block, join)
                    cfg.add_edge(else_block, join)
                    self.regions.append(
                        (RegionShape.IF_ELSE.value, (current, then_block, else_block, join))
                    )
                    current = join
            else:
                nxt = new_block()
                cfg.add_edge(current, nxt)
                self.regions.append((RegionShape.SEQ.value, (current, nxt)))
                current = nxt

        return cfg

    def _generate_random(self, config: CFGConfig) -> ControlFlowGraph:
        """Erdos-Renyi digraph via rustworkx, relabelled as blocks b0..bn-1."""
        graph = rx.directed_gnp_random_graph(
            config.num_blocks,
            config.edge_probability,
            seed=self.seed,
        )
        self.regions = []
        return from_rustworkx(graph)


# =============================================================================
# FACTORY FUNCTIONS (Convenience API)
# =============================================================================

def create_structured_cfg(
    num_blocks: int,
    branch_probability: float = 0.4,
    loop_probability: float = 0.2,
    seed: Optional[int] = None,
) -> ControlFlowGraph:
    """
    Example:
        cfg = create_structured_cfg(num_blocks=500, seed=42)
    """
    config = CFGConfig(
        topology_type=CFGTopologies.STRUCTURED.value,
        num_blocks=num_blocks,
        branch_probability=branch_probability,
        loop_probability=loop_probability,
    )
    return CFGGenerator(seed=seed).generate(config)


def create_random_cfg(
    num_blocks: int,
    edge_probability: float = 0.2,
    seed: Optional[int] = None,
) -> ControlFlowGraph:
    """
    Example:
        cfg = create_random_cfg(num_blocks=8, edge_probability=0.3, seed=7)
    """
    config = CFGConfig(
        topology_type=CFGTopologies.RANDOM.value,
        num_blocks=num_blocks,
        edge_probability=edge_probability,
    )
    return CFGGenerator(seed=seed).generate(config)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def from_rustworkx(graph: rx.PyDiGraph) -> ControlFlowGraph:
    """Copy a bare rustworkx digraph into a ControlFlowGraph (blocks b0..bn-1)."""
    cfg = ControlFlowGraph()
    index_map = {}
    for idx in sorted(graph.node_indices()):
        index_map[idx] = cfg.add_node(f"b{idx}")
    for source, target in graph.edge_list():
        cfg.add_edge(index_map[source], index_map[target])
    return cfg


def graph_stats(cfg: ControlFlowGraph) -> dict:
    """
    Basic statistics for a generated CFG.

    cyclomatic_complexity is McCabe's E - N + 2P with P the number of
    weakly connected components.
    """
    graph = cfg.rx_graph
    num_nodes = cfg.node_count
    num_edges = cfg.edge_count
    components = rx.number_weakly_connected_components(graph) if num_nodes else 0
    self_loops = sum(1 for s, t in graph.edge_list() if s == t)

    return {
        "num_nodes": num_nodes,
        "num_edges": num_edges,
        "self_loops": self_loops,
        "is_dag": rx.is_directed_acyclic_graph(graph),
        "weakly_connected_components": components,
        "cyclomatic_complexity": num_edges - num_nodes + 2 * components,
    }
