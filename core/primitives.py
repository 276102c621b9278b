"""
CFGMATCH PRIMITIVES - Standard Control-Flow Templates

The shapes a structuring pass looks for, ready to hand to the matcher.
Node names are the letters used in the docstrings; the entry is always A.

    seq        A -> B                                  exit B
    if_then    A -> B, A -> C, B -> C                  exit C
    if_else    A -> B, A -> C, B -> D, C -> D          exit D
    if_return  A -> B, A -> C  (B returns)             exit C
    pre_loop   A -> B, B -> C, C -> B, B -> D          exit D
    post_loop  A -> B, B -> B, B -> C                  exit C
    switch(n)  A -> C1..Cn, Ci -> X                    exit X

Loop headers are never the entry: edges into the entry are excluded from
matching, so a back-edge to the entry would not constrain anything. The
loop templates therefore include the block that falls into the header.
"""
from typing import Callable, Dict, List, Tuple

from core.template import Template


def _build(name: str, edges: List[Tuple[str, str]], exit: str) -> Template:
    return Template.from_edges(edges, entry="A", exit=exit, name=name)


def seq() -> Template:
    """Two blocks in sequence."""
    return _build("seq", [("A", "B")], exit="B")


def if_then() -> Template:
    """Conditional with a single guarded block."""
    return _build("if_then", [("A", "B"), ("A", "C"), ("B", "C")], exit="C")


def if_else() -> Template:
    """Two-armed conditional joining at D."""
    return _build(
        "if_else",
        [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")],
        exit="D",
    )


def if_return() -> Template:
    """Conditional whose taken arm B returns (no successor inside the shape)."""
    return _build("if_return", [("A", "B"), ("A", "C")], exit="C")


def pre_loop() -> Template:
    """Pre-tested loop: header B, body C, exit D; A falls into the header."""
    return _build(
        "pre_loop",
        [("A", "B"), ("B", "C"), ("C", "B"), ("B", "D")],
        exit="D",
    )


def post_loop() -> Template:
    """Post-tested single-block loop B; A falls into it."""
    return _build("post_loop", [("A", "B"), ("B", "B"), ("B", "C")], exit="C")


def switch(n: int) -> Template:
    """
    n-way dispatch from A to C1..Cn, every case falling through to X.

    Raises:
        ValueError: n < 2
    """
    if n < 2:
        raise ValueError(f"switch needs at least 2 cases, got {n}")
    cases = [f"C{i}" for i in range(1, n + 1)]
    edges = [("A", c) for c in cases] + [(c, "X") for c in cases]
    return _build(f"switch_{n}", edges, exit="X")


# =============================================================================
# REGISTRY
# =============================================================================

PRIMITIVES: Dict[str, Callable[[], Template]] = {
    "seq": seq,
    "if_then": if_then,
    "if_else": if_else,
    "if_return": if_return,
    "pre_loop": pre_loop,
    "post_loop": post_loop,
    "switch_3": lambda: switch(3),
}


def get_primitive(name: str) -> Template:
    """
    Build the named primitive template.

    Raises:
        KeyError: Unknown primitive name
    """
    try:
        factory = PRIMITIVES[name]
    except KeyError:
        raise KeyError(f"Unknown primitive {name!r}; known: {sorted(PRIMITIVES)}") from None
    return factory()


def all_primitives() -> List[Template]:
    """Every registered primitive, in registry order."""
    return [factory() for factory in PRIMITIVES.values()]
