"""
Pytest configuration and shared fixtures for the cfgmatch test suite.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset the global search logger before and after each test."""
    from infrastructure.logger import reset_logger

    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def chain_template():
    """Entry A -> B -> C (exit)."""
    from core.template import Template
    return Template.from_edges([("A", "B"), ("B", "C")], entry="A", exit="C", name="chain")


@pytest.fixture
def three_cycle():
    """X -> Y -> Z -> X."""
    from core.graph import ControlFlowGraph
    return ControlFlowGraph.from_edges([("X", "Y"), ("Y", "Z"), ("Z", "X")])


@pytest.fixture
def diamond_cfg():
    """
    Two if/else diamonds in sequence:

        0 -> 1, 0 -> 2, 1 -> 3, 2 -> 3, 3 -> 4, 3 -> 5, 4 -> 6, 5 -> 6
    """
    from core.graph import ControlFlowGraph
    return ControlFlowGraph.from_edges(
        [
            ("b0", "b1"), ("b0", "b2"), ("b1", "b3"), ("b2", "b3"),
            ("b3", "b4"), ("b3", "b5"), ("b4", "b6"), ("b5", "b6"),
        ],
        nodes=[f"b{i}" for i in range(7)],
    )
