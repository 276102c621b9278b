"""
Unit tests for core/matcher.py - SubgraphMatcher

Tests:
- Canonical scenarios (3-cycle, entry self-loop, diamonds)
- Induced adjacency with entry/exit exclusion
- FIRST / ALL / DISJOINT policies
- Anchor selection and ordering
- Closed-region (strict boundary) matching
- Step bound and abort semantics
- Search trace events
"""
import pytest

from core.graph import ControlFlowGraph, NodeNotFoundError
from core.matcher import (
    Mapping,
    SearchAbortedError,
    SubgraphMatcher,
    find_first_match,
    find_matches,
    is_closed_region,
)
from core.ontology import MatchPolicy, SearchEventType
from core.primitives import get_primitive
from core.schemas import MatchConfig
from core.template import Template
from infrastructure.logger import SearchLogger


# =============================================================================
# CANONICAL SCENARIOS
# =============================================================================

def test_chain_in_three_cycle_matches_every_rotation(chain_template, three_cycle):
    results = find_matches(chain_template, three_cycle, "all")

    assert len(results) == 3
    assert results.mappings() == [
        {0: 0, 1: 1, 2: 2},
        {0: 1, 1: 2, 2: 0},
        {0: 2, 1: 0, 2: 1},
    ]
    assert results.anchors() == [0, 1, 2]


def test_entry_self_loop_is_ignored():
    tpl = Template.from_edges([("A", "A"), ("A", "B")], entry="A", exit="B")
    target = ControlFlowGraph.from_edges([("P", "Q")])

    results = find_matches(tpl, target)

    assert results.mappings() == [{0: 0, 1: 1}]


def test_if_else_in_diamonds(diamond_cfg):
    results = find_matches(get_primitive("if_else"), diamond_cfg, MatchPolicy.ALL)

    # Each diamond matches twice (the two arms may swap)
    assert results.anchors() == [0, 0, 3, 3]
    assert results.mappings()[0] == {0: 0, 1: 1, 2: 2, 3: 3}
    assert results.mappings()[1] == {0: 0, 1: 2, 2: 1, 3: 3}
    assert results[2].exit_target == 6


def test_no_occurrence_is_empty_not_error(diamond_cfg):
    results = find_matches(get_primitive("if_then"), diamond_cfg)

    assert len(results) == 0
    assert not results
    assert results.first() is None


def test_template_larger_than_target_yields_nothing():
    target = ControlFlowGraph.from_edges([("P", "Q")])

    assert not find_matches(get_primitive("if_else"), target)


def test_single_node_template_matches_every_node():
    graph = ControlFlowGraph.from_edges([], nodes=["A"])
    tpl = Template(graph=graph, entry=0, exit=0)
    target = ControlFlowGraph.from_edges([("P", "Q"), ("Q", "Q")])

    assert find_matches(tpl, target).anchors() == [0, 1]


# =============================================================================
# INDUCED ADJACENCY
# =============================================================================

def test_extra_edge_between_interior_pair_rejects():
    target = ControlFlowGraph.from_edges([("A", "B"), ("A", "C"), ("B", "D"), ("C", "D"), ("B", "C")])

    results = find_matches(get_primitive("if_else"), target)

    assert not results


def test_interior_self_loop_in_target_rejects():
    target = ControlFlowGraph.from_edges([("A", "B"), ("A", "C"), ("B", "C"), ("B", "B")])

    assert not find_matches(get_primitive("if_then"), target)


def test_edges_into_entry_and_out_of_exit_are_ignored():
    # Back-edges from the interior to the entry and from the exit into the interior
    target = ControlFlowGraph.from_edges(
        [("A", "B"), ("A", "C"), ("B", "C"), ("B", "A"), ("C", "B"), ("C", "A")]
    )

    results = find_matches(get_primitive("if_then"), target, anchors=[0])

    # C -> B leaves the exit, so the arms may also swap
    assert results.mappings() == [{0: 0, 1: 1, 2: 2}, {0: 0, 1: 2, 2: 1}]


def test_parallel_target_edges_count_once():
    target = ControlFlowGraph.from_edges([("P", "Q"), ("P", "Q")])

    assert len(find_matches(get_primitive("seq"), target)) == 1


def test_post_loop_requires_self_loop():
    with_loop = ControlFlowGraph.from_edges([("a", "b"), ("b", "b"), ("b", "c")])
    without = ControlFlowGraph.from_edges([("a", "b"), ("b", "c")])
    tpl = get_primitive("post_loop")

    assert find_matches(tpl, with_loop).mappings() == [{0: 0, 1: 1, 2: 2}]
    assert not find_matches(tpl, without)


def test_pre_loop_in_loop_nest():
    target = ControlFlowGraph.from_edges([("pre", "h"), ("h", "body"), ("body", "h"), ("h", "out")])

    results = find_matches(get_primitive("pre_loop"), target)

    assert results.mappings() == [{0: 0, 1: 1, 2: 2, 3: 3}]


# =============================================================================
# POLICIES
# =============================================================================

def test_first_policy_returns_earliest(diamond_cfg):
    results = find_matches(get_primitive("if_else"), diamond_cfg, "first")

    assert len(results) == 1
    assert results.policy is MatchPolicy.FIRST
    assert results[0].mapping == {0: 0, 1: 1, 2: 2, 3: 3}


def test_find_first_match_none_when_absent(diamond_cfg):
    assert find_first_match(get_primitive("if_then"), diamond_cfg) is None
    assert find_first_match(get_primitive("seq"), diamond_cfg).mapping == {0: 0, 1: 1}


def test_disjoint_skips_covered_anchors(diamond_cfg):
    matcher = SubgraphMatcher(get_primitive("if_else"), diamond_cfg)

    results = matcher.match(policy="disjoint")

    # The second diamond shares its entry b3 with the first one's exit
    assert results.anchors() == [0]
    assert results.anchors_searched == 4


def test_disjoint_seq_cover(diamond_cfg):
    results = find_matches(get_primitive("seq"), diamond_cfg, MatchPolicy.DISJOINT)

    assert results.mappings() == [{0: 0, 1: 1}, {0: 2, 1: 3}, {0: 4, 1: 6}]
    assert results.is_disjoint()


def test_all_keeps_overlapping_matches(diamond_cfg):
    results = find_matches(get_primitive("seq"), diamond_cfg, MatchPolicy.ALL)

    assert len(results) == diamond_cfg.edge_count
    assert not results.is_disjoint()


def test_invalid_policy_rejected(chain_template, three_cycle):
    with pytest.raises(ValueError):
        find_matches(chain_template, three_cycle, "most")


def test_config_policy_used_by_default(chain_template, three_cycle):
    matcher = SubgraphMatcher(chain_template, three_cycle, config=MatchConfig(policy="first"))

    assert len(matcher.match()) == 1


# =============================================================================
# ANCHORS
# =============================================================================

def test_explicit_anchor_list_keeps_given_order(diamond_cfg):
    results = find_matches(get_primitive("if_else"), diamond_cfg, anchors=[3, 0])

    assert results.anchors() == [3, 3, 0, 0]


def test_anchor_set_uses_configured_order(diamond_cfg):
    results = find_matches(get_primitive("if_else"), diamond_cfg, anchors={3, 0})

    assert results.anchors() == [0, 0, 3, 3]


def test_duplicate_anchors_searched_once(chain_template, three_cycle):
    results = find_matches(chain_template, three_cycle, anchors=[1, 1, 1])

    assert results.anchors() == [1]


def test_unknown_anchor_fails(chain_template, three_cycle):
    with pytest.raises(NodeNotFoundError):
        find_matches(chain_template, three_cycle, anchors=[0, 17])


def test_rpo_anchor_order(diamond_cfg):
    config = MatchConfig(anchor_order="rpo", rpo_root=0)

    results = find_matches(get_primitive("seq"), diamond_cfg, config=config)

    assert results.anchors() == [0, 0, 2, 1, 3, 3, 5, 4]


def test_match_anchor_directly(chain_template, three_cycle):
    matcher = SubgraphMatcher(chain_template, three_cycle)

    matches = list(matcher.match_anchor(2))
    blocked = list(matcher.match_anchor(2, excluded=frozenset({0})))

    assert [m.mapping for m in matches] == [{0: 2, 1: 0, 2: 1}]
    assert blocked == []


# =============================================================================
# STRICT BOUNDARY
# =============================================================================

def test_strict_boundary_rejects_open_regions(diamond_cfg):
    config = MatchConfig(strict_boundary=True)

    assert not find_matches(get_primitive("seq"), diamond_cfg, config=config)
    assert len(find_matches(get_primitive("if_else"), diamond_cfg, config=config)) == 4


def test_is_closed_region(diamond_cfg):
    tpl = get_primitive("seq")

    assert not is_closed_region(tpl, diamond_cfg, {0: 0, 1: 1})

    chain = ControlFlowGraph.from_edges([("x", "y")])
    assert is_closed_region(tpl, chain, {0: 0, 1: 1})


# =============================================================================
# STEP BOUND
# =============================================================================

def test_step_bound_aborts_with_partial_matches(chain_template, three_cycle):
    # Anchor 0 takes 3 candidate checks to produce its match
    matcher = SubgraphMatcher(chain_template, three_cycle, config=MatchConfig(max_steps=4))

    with pytest.raises(SearchAbortedError) as exc_info:
        matcher.match()

    err = exc_info.value
    assert err.max_steps == 4
    assert err.steps == 5
    assert [m.mapping for m in err.matches] == [{0: 0, 1: 1, 2: 2}]


def test_generous_step_bound_completes(chain_template, three_cycle):
    matcher = SubgraphMatcher(chain_template, three_cycle, config=MatchConfig(max_steps=1000))

    results = matcher.match()

    assert len(results) == 3
    assert 0 < results.steps <= 1000


def test_invalid_max_steps_rejected(chain_template, three_cycle):
    with pytest.raises(ValueError):
        SubgraphMatcher(chain_template, three_cycle, config=MatchConfig(max_steps=0))


# =============================================================================
# LAZY ITERATION
# =============================================================================

def test_iter_matches_stops_when_consumer_stops(diamond_cfg):
    matcher = SubgraphMatcher(get_primitive("seq"), diamond_cfg)

    gen = matcher.iter_matches()
    first = next(gen)
    gen.close()

    assert first.mapping == {0: 0, 1: 1}
    assert matcher.anchors_searched == 1


def test_repeated_searches_are_identical(diamond_cfg):
    matcher = SubgraphMatcher(get_primitive("if_else"), diamond_cfg)

    assert matcher.match().mappings() == matcher.match().mappings()


# =============================================================================
# MAPPING
# =============================================================================

def test_mapping_extend_and_retract():
    mapping = Mapping()
    mapping.extend(0, 5)
    mapping.extend(1, 7)

    assert mapping.depth == 2
    assert 1 in mapping
    assert mapping.used == {5, 7}

    assert mapping.retract() == (1, 7)
    assert mapping.get(1) is None
    assert mapping.used == {5}


# =============================================================================
# TRACE EVENTS
# =============================================================================

def test_search_trace_events(diamond_cfg):
    trace = SearchLogger()
    matcher = SubgraphMatcher(get_primitive("if_else"), diamond_cfg, logger=trace)

    matcher.match()

    assert len(trace.get_by_type(SearchEventType.SEARCH_STARTED)) == 1
    assert len(trace.get_by_type(SearchEventType.ANCHOR_STARTED)) == 7
    found = trace.get_by_type(SearchEventType.MATCH_FOUND)
    assert [e.anchor for e in found] == [0, 0, 3, 3]
    assert found[0].template == "if_else"
    assert found[0].mapping == {0: 0, 1: 1, 2: 2, 3: 3}
    finished = trace.get_by_type("search_finished")
    assert finished[0].matches == 4


def test_abort_is_traced(chain_template, three_cycle):
    trace = SearchLogger()
    matcher = SubgraphMatcher(chain_template, three_cycle, config=MatchConfig(max_steps=2), logger=trace)

    with pytest.raises(SearchAbortedError):
        matcher.match()

    aborted = trace.get_by_type(SearchEventType.SEARCH_ABORTED)
    assert len(aborted) == 1
    assert aborted[0].steps == 3
    assert not trace.get_by_type(SearchEventType.SEARCH_FINISHED)
