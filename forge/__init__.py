"""
CFGMATCH.FORGE - Synthetic Control-Flow Graphs

Components:
- topologist: Seeded structured and random target CFG generation

Design Philosophy:
1. NO PYDANTIC: All schemas use msgspec.Struct
2. GRAPH-NATIVE: Built on rustworkx
3. DETERMINISTIC: Reproducible via seeds
"""

from forge.topologist import (
    CFGGenerator,
    CFGConfig,
    CFGTopologies,
    RegionShape,
    create_structured_cfg,
    create_random_cfg,
    from_rustworkx,
    graph_stats,
)

__all__ = [
    "CFGGenerator",
    "CFGConfig",
    "CFGTopologies",
    "RegionShape",
    "create_structured_cfg",
    "create_random_cfg",
    "from_rustworkx",
    "graph_stats",
]
