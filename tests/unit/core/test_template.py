"""
Template Loader Verification

Tests:
1. Entry/exit discovery from the "label" attribute
2. Missing / duplicate designations with the conflicting node identities
3. Entry/exit edge exclusion (relevant_edges)
4. Exploration order guarantees
5. InvalidTemplateError for ambiguous entry == exit templates
"""
import itertools
import unittest

from core.graph import ControlFlowGraph, NodeNotFoundError
from core.template import (
    DuplicateEntryError,
    DuplicateExitError,
    InvalidTemplateError,
    MissingEntryError,
    MissingExitError,
    Template,
    TemplateError,
    load_template,
)


def labelled(edges, labels, nodes=None):
    """Build a graph with {name: label} applied."""
    attrs = {name: {"label": value} for name, value in labels.items()}
    return ControlFlowGraph.from_edges(edges, attrs=attrs, nodes=nodes)


# =============================================================================
# LOADING
# =============================================================================

class TestLoadTemplate(unittest.TestCase):
    """Entry and exit discovery."""

    def test_if_then_shape(self):
        graph = labelled(
            [("A", "B"), ("A", "C"), ("B", "C")],
            {"A": "entry", "C": "exit"},
        )
        tpl = load_template(graph)

        self.assertEqual(tpl.entry, graph.index_of("A"))
        self.assertEqual(tpl.exit, graph.index_of("C"))
        self.assertEqual(tpl.size, 3)
        self.assertIs(tpl.graph, graph)

    def test_independent_of_node_order(self):
        edges = [("A", "B"), ("B", "C")]
        for order in itertools.permutations("ABC"):
            graph = labelled(edges, {"A": "entry", "C": "exit"}, nodes=list(order))
            tpl = load_template(graph)
            self.assertEqual(graph.name_of(tpl.entry), "A")
            self.assertEqual(graph.name_of(tpl.exit), "C")

    def test_other_labels_ignored(self):
        graph = labelled(
            [("A", "B"), ("B", "C")],
            {"A": "entry", "B": "true", "C": "exit"},
        )
        tpl = load_template(graph)
        self.assertEqual(graph.name_of(tpl.entry), "A")

    def test_labels_are_case_sensitive(self):
        graph = labelled([("A", "B")], {"A": "Entry", "B": "exit"})
        with self.assertRaises(MissingEntryError):
            load_template(graph)

    def test_graph_not_mutated(self):
        graph = labelled([("A", "B")], {"A": "entry", "B": "exit"})
        before = (graph.node_count, graph.edges(), graph.node_data(0).attrs.copy())
        load_template(graph)
        after = (graph.node_count, graph.edges(), graph.node_data(0).attrs)
        self.assertEqual(before, after)


class TestLoadTemplateErrors(unittest.TestCase):
    """Missing and duplicate designations."""

    def test_missing_entry(self):
        graph = labelled([("A", "B")], {"B": "exit"})
        with self.assertRaises(MissingEntryError):
            load_template(graph)

    def test_missing_exit(self):
        graph = labelled([("A", "B")], {"A": "entry"})
        with self.assertRaises(MissingExitError):
            load_template(graph)

    def test_no_labels_reports_entry_first(self):
        graph = ControlFlowGraph.from_edges([("A", "B")])
        with self.assertRaises(MissingEntryError):
            load_template(graph)

    def test_duplicate_entry_names_both_nodes(self):
        graph = labelled(
            [("A", "C"), ("B", "C")],
            {"A": "entry", "B": "entry", "C": "exit"},
        )
        with self.assertRaises(DuplicateEntryError) as ctx:
            load_template(graph)

        err = ctx.exception
        self.assertEqual(err.previous, graph.index_of("A"))
        self.assertEqual(err.new, graph.index_of("B"))
        self.assertIn("previous index (0)", str(err))
        self.assertIn("new index (1)", str(err))
        self.assertIsInstance(err, TemplateError)

    def test_duplicate_exit_names_both_nodes(self):
        graph = labelled(
            [("A", "B"), ("A", "C")],
            {"A": "entry", "B": "exit", "C": "exit"},
        )
        with self.assertRaises(DuplicateExitError) as ctx:
            load_template(graph)

        self.assertEqual(ctx.exception.previous, graph.index_of("B"))
        self.assertEqual(ctx.exception.new, graph.index_of("C"))

    def test_three_entries_fail_on_second(self):
        graph = labelled(
            [("A", "D"), ("B", "D"), ("C", "D")],
            {"A": "entry", "B": "entry", "C": "entry", "D": "exit"},
        )
        with self.assertRaises(DuplicateEntryError) as ctx:
            load_template(graph)
        self.assertEqual((ctx.exception.previous, ctx.exception.new), (0, 1))


# =============================================================================
# DERIVED STRUCTURE
# =============================================================================

class TestRelevantEdges(unittest.TestCase):
    """Entry/exit exclusion rule."""

    def test_back_edge_into_entry_excluded(self):
        tpl = Template.from_edges([("A", "B"), ("B", "A"), ("B", "C")], entry="A", exit="C")
        a, b, c = 0, 1, 2
        self.assertEqual(tpl.relevant_edges, frozenset({(a, b), (b, c)}))

    def test_edges_leaving_exit_excluded(self):
        tpl = Template.from_edges([("A", "B"), ("B", "C"), ("C", "B")], entry="A", exit="C")
        self.assertNotIn((2, 1), tpl.relevant_edges)
        self.assertTrue(tpl.is_excluded_pair(2, 1))

    def test_self_loops_on_entry_and_exit_excluded(self):
        tpl = Template.from_edges(
            [("A", "A"), ("A", "B"), ("B", "B"), ("B", "C"), ("C", "C")],
            entry="A", exit="C",
        )
        self.assertEqual(tpl.relevant_edges, frozenset({(0, 1), (1, 1), (1, 2)}))
        self.assertTrue(tpl.is_excluded_pair(0, 0))
        self.assertTrue(tpl.is_excluded_pair(2, 2))
        self.assertFalse(tpl.is_excluded_pair(1, 1))

    def test_parallel_edges_counted_once(self):
        tpl = Template.from_edges([("A", "B"), ("A", "B")], entry="A", exit="B")
        self.assertEqual(tpl.relevant_edges, frozenset({(0, 1)}))


class TestExplorationOrder(unittest.TestCase):
    """Every connected node after the entry has an earlier neighbor."""

    def assert_constrained(self, tpl):
        order = tpl.exploration_order
        self.assertEqual(order[0], tpl.entry)
        self.assertEqual(sorted(order), sorted(tpl.nodes))
        for i, node in enumerate(order[1:], start=1):
            earlier = set(order[:i])
            neighbors = {v for u, v in tpl.relevant_edges if u == node and v != node}
            neighbors |= {u for u, v in tpl.relevant_edges if v == node and u != node}
            self.assertTrue(neighbors & earlier, f"node {node} has no earlier neighbor")

    def test_breadth_first_from_entry(self):
        tpl = Template.from_edges(
            [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")], entry="A", exit="D"
        )
        self.assertEqual(tpl.exploration_order, (0, 1, 2, 3))
        self.assert_constrained(tpl)

    def test_node_reachable_only_backwards(self):
        # X feeds B but nothing reaches X from the entry
        tpl = Template.from_edges([("A", "B"), ("X", "B"), ("B", "C")], entry="A", exit="C")
        self.assertEqual(tpl.exploration_order, (0, 1, 3, 2))
        self.assertIn(tpl.graph.index_of("X"), tpl.exploration_order)
        self.assert_constrained(tpl)

    def test_deterministic(self):
        edges = [("A", "C"), ("A", "B"), ("B", "D"), ("C", "D"), ("D", "E")]
        first = Template.from_edges(edges, entry="A", exit="E").exploration_order
        second = Template.from_edges(edges, entry="A", exit="E").exploration_order
        self.assertEqual(first, second)


class TestTemplateValidation(unittest.TestCase):
    """Direct construction checks."""

    def test_entry_equals_exit_with_extra_nodes_rejected(self):
        graph = ControlFlowGraph.from_edges([("A", "B")])
        with self.assertRaises(InvalidTemplateError) as ctx:
            Template(graph=graph, entry=0, exit=0)
        self.assertEqual(ctx.exception.node_count, 2)

    def test_single_node_entry_equals_exit_allowed(self):
        graph = ControlFlowGraph.from_edges([], nodes=["A"])
        tpl = Template(graph=graph, entry=0, exit=0)
        self.assertEqual(tpl.exploration_order, (0,))
        self.assertEqual(tpl.relevant_edges, frozenset())

    def test_from_edges_same_entry_and_exit_single_node(self):
        tpl = Template.from_edges([("A", "A")], entry="A", exit="A")
        self.assertEqual(tpl.size, 1)
        self.assertEqual((tpl.entry, tpl.exit), (0, 0))
        self.assertEqual(tpl.relevant_edges, frozenset())

    def test_from_edges_same_entry_and_exit_isolated_node(self):
        tpl = Template.from_edges([], entry="A", exit="A")
        self.assertEqual(tpl.exploration_order, (0,))

    def test_from_edges_same_entry_and_exit_with_extra_nodes_rejected(self):
        with self.assertRaises(InvalidTemplateError) as ctx:
            Template.from_edges([("A", "B")], entry="A", exit="A")
        self.assertEqual(ctx.exception.node_count, 2)

    def test_unknown_entry_rejected(self):
        graph = ControlFlowGraph.from_edges([("A", "B")])
        with self.assertRaises(NodeNotFoundError):
            Template(graph=graph, entry=5, exit=1)

    def test_template_is_immutable(self):
        tpl = Template.from_edges([("A", "B")], entry="A", exit="B")
        with self.assertRaises(AttributeError):
            tpl.entry = 1


if __name__ == "__main__":
    unittest.main()
