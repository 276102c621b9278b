"""
CFGMATCH MATCHER - Subgraph Isomorphism for Control-Flow Templates

Finds every occurrence of a Template inside a target control-flow graph.

Algorithm (ordered backtracking, exploiting single-entry / single-exit):
1. Each target node (an "anchor") is tried as the image of the template
   entry.
2. Template nodes are bound in the template's exploration_order, so every
   node after the entry already has a bound neighbor that narrows its
   candidates to the successors / predecessors of that neighbor's image.
3. A candidate is accepted only if, for every already-bound template node
   (and itself), each ordered pair that is not excluded by the entry/exit
   rule has a template edge iff the target has the corresponding edge.
   This is the correctness check, not a heuristic filter.
4. A complete mapping is a Match; the policy decides whether to stop
   (FIRST), keep going (ALL) or move to the next unused anchor (DISJOINT).

Edges are compared by set membership: parallel edges count once, and a
self-loop is just the pair (n, n).

The search is an explicit stack of candidate iterators (one frame per bound
template node) with a reversible Mapping, so deep templates never hit the
recursion limit, and a step counter can abort it between any two candidate
checks. Stopping consumption of iter_matches() cancels the search; nothing
needs to be released.

Thread Safety:
    A SubgraphMatcher holds per-search state (steps, the active Mapping).
    Use one matcher per worker thread; the target graph may be shared.
"""
import logging
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

from core.graph import GraphError, GraphView, NodeNotFoundError, reverse_post_order
from core.ontology import AnchorOrder, MatchPolicy, coerce_anchor_order, coerce_policy
from core.results import MatchResultSet
from core.schemas import Match, MatchConfig
from core.template import Template

if TYPE_CHECKING:
    from infrastructure.logger import SearchLogger

logger = logging.getLogger(__name__)

# Candidate generation constraint kinds
_SUCC = "succ"   # (bound -> u): candidates are successors of the bound image
_PRED = "pred"   # (u -> bound): candidates are predecessors of the bound image


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class SearchAbortedError(GraphError):
    """
    Raised when a search exceeds its step bound.

    Distinct from an empty result: the pattern may still be present.
    `matches` holds what was found before the bound was hit.
    """
    def __init__(self, steps: int, max_steps: int, matches: Optional[List[Match]] = None):
        self.steps = steps
        self.max_steps = max_steps
        self.matches: List[Match] = list(matches or [])
        super().__init__(f"Search aborted after {steps} steps (max_steps={max_steps})")


# =============================================================================
# MAPPING (Reversible Partial Injection)
# =============================================================================

class Mapping:
    """
    Partial injective map template -> target, grown and shrunk in LIFO order.

    extend() pushes a decision, retract() pops the most recent one. The
    `used` set mirrors the image so injectivity checks are O(1).
    """

    def __init__(self):
        self.forward: Dict[int, int] = {}
        self.used: Set[int] = set()
        self._stack: List[int] = []

    def extend(self, template_node: int, target_node: int) -> None:
        self.forward[template_node] = target_node
        self.used.add(target_node)
        self._stack.append(template_node)

    def retract(self) -> Tuple[int, int]:
        template_node = self._stack.pop()
        target_node = self.forward.pop(template_node)
        self.used.discard(target_node)
        return template_node, target_node

    def get(self, template_node: int) -> Optional[int]:
        return self.forward.get(template_node)

    @property
    def depth(self) -> int:
        return len(self._stack)

    def __contains__(self, template_node: int) -> bool:
        return template_node in self.forward

    def __len__(self) -> int:
        return len(self._stack)


# =============================================================================
# SUBGRAPH MATCHER
# =============================================================================

class SubgraphMatcher:
    """
    Searches a target graph for occurrences of one Template.

    Usage:
        tpl = get_primitive("if_else")
        matcher = SubgraphMatcher(tpl, cfg)

        results = matcher.match(policy="disjoint")
        for match in results:
            print(match.anchor, match.mapping)

        # Lazy: stop consuming to cancel
        first = next(matcher.iter_matches(), None)
    """

    def __init__(
        self,
        template: Template,
        target: GraphView,
        config: Optional[MatchConfig] = None,
        logger: Optional["SearchLogger"] = None,
    ):
        self.config = config or MatchConfig()
        self.config.validate()

        self.template = template
        self.target = target
        self._trace = logger

        self.steps: int = 0
        self.anchors_searched: int = 0
        self._constraints = self._build_constraints()

    # =========================================================================
    # PLAN
    # =========================================================================

    def _build_constraints(self) -> Dict[int, List[Tuple[int, str]]]:
        """
        For each template node, the earlier-bound neighbors that generate its
        candidates, with the direction to follow in the target.
        """
        tpl = self.template
        position = {u: i for i, u in enumerate(tpl.exploration_order)}
        constraints: Dict[int, List[Tuple[int, str]]] = {u: [] for u in tpl.nodes}

        for source, target in sorted(tpl.relevant_edges):
            if source == target:
                continue
            if position[source] < position[target]:
                constraints[target].append((source, _SUCC))
            else:
                constraints[source].append((target, _PRED))
        return constraints

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def iter_matches(
        self,
        anchors: Optional[Iterable[int]] = None,
        policy=None,
    ) -> Iterator[Match]:
        """
        Lazily yield matches in discovery order.

        Args:
            anchors: Target nodes to try as the entry image. None = every
                target node in the configured anchor order. A set is ordered
                by the configured anchor order; any other iterable is used
                in the order given.
            policy: Overrides config.policy for this search.

        Raises:
            NodeNotFoundError: An anchor is not a target node
            SearchAbortedError: config.max_steps exceeded
        """
        policy = coerce_policy(policy if policy is not None else self.config.policy)
        anchor_list = self.resolve_anchors(anchors)
        name = self.template.name

        self.steps = 0
        self.anchors_searched = 0
        found = 0
        excluded: Set[int] = set()

        logger.debug(
            "Searching template %r (%d nodes) over %d anchors, policy=%s",
            name, self.template.size, len(anchor_list), policy.value,
        )
        if self._trace is not None:
            self._trace.log_search_started(name, policy.value)

        if self.template.size > len(self.target.node_indices()):
            anchor_list = []

        for anchor in anchor_list:
            if policy is MatchPolicy.DISJOINT and anchor in excluded:
                continue

            self.anchors_searched += 1
            if self._trace is not None:
                self._trace.log_anchor(name, anchor)

            blocked = frozenset(excluded) if policy is MatchPolicy.DISJOINT else frozenset()
            for match in self.match_anchor(anchor, blocked):
                found += 1
                logger.debug("Template %r matched at anchor %d: %s", name, anchor, match.mapping)
                if self._trace is not None:
                    self._trace.log_match(name, anchor, match.mapping)
                yield match

                if policy is MatchPolicy.FIRST:
                    self._finish(found)
                    return
                if policy is MatchPolicy.DISJOINT:
                    excluded.update(match.target_nodes)
                    break

        self._finish(found)

    def match(self, anchors: Optional[Iterable[int]] = None, policy=None) -> MatchResultSet:
        """
        Run a search to completion and collect the results.

        An empty (falsy) MatchResultSet means no occurrence exists.

        Raises:
            SearchAbortedError: config.max_steps exceeded; `matches` carries
                the matches found before the abort
        """
        policy = coerce_policy(policy if policy is not None else self.config.policy)
        results = MatchResultSet(policy)
        try:
            for match in self.iter_matches(anchors, policy):
                results.append(match)
        except SearchAbortedError as e:
            e.matches = list(results)
            logger.info(
                "Search for template %r aborted after %d steps with %d match(es)",
                self.template.name, e.steps, len(results),
            )
            if self._trace is not None:
                self._trace.log_abort(self.template.name, e.steps, len(results))
            raise
        finally:
            results.steps = self.steps
            results.anchors_searched = self.anchors_searched
        return results

    def match_anchor(self, anchor: int, excluded: FrozenSet[int] = frozenset()) -> Iterator[Match]:
        """
        Yield every match whose entry image is `anchor`.

        Target nodes in `excluded` are never used. This is the unit of work
        for parallel searches: it shares nothing with other anchors.
        """
        if not self.target.has_node(anchor):
            raise NodeNotFoundError(anchor)
        if anchor in excluded:
            return

        tpl = self.template
        order = tpl.exploration_order
        mapping = Mapping()

        self._step()
        if not self._consistent(tpl.entry, anchor, mapping):
            return
        mapping.extend(tpl.entry, anchor)

        if len(order) == 1:
            if self._accept(mapping):
                yield Match.from_mapping(mapping.forward, tpl.entry, tpl.exit)
            return

        # frames[i] iterates the candidates for order[i + 1]
        frames: List[Iterator[int]] = [iter(self._candidates(order[1], mapping, excluded))]
        while frames:
            node = order[len(frames)]

            bound = False
            for candidate in frames[-1]:
                self._step()
                if self._consistent(node, candidate, mapping):
                    mapping.extend(node, candidate)
                    bound = True
                    break

            if not bound:
                frames.pop()
                if frames:
                    mapping.retract()
                continue

            if len(mapping) == len(order):
                if self._accept(mapping):
                    yield Match.from_mapping(mapping.forward, tpl.entry, tpl.exit)
                mapping.retract()
                continue

            frames.append(iter(self._candidates(order[len(frames) + 1], mapping, excluded)))

    # =========================================================================
    # SEARCH INTERNALS
    # =========================================================================

    def _candidates(self, node: int, mapping: Mapping, excluded: FrozenSet[int]) -> List[int]:
        """Unused target nodes adjacent, in the right direction, to every bound neighbor."""
        neighborhoods = []
        for bound, kind in self._constraints[node]:
            image = mapping.forward[bound]
            if kind == _SUCC:
                neighborhoods.append(self.target.successors(image))
            else:
                neighborhoods.append(self.target.predecessors(image))

        if neighborhoods:
            neighborhoods.sort(key=len)
            pool = set(neighborhoods[0])
            for other in neighborhoods[1:]:
                pool &= other
        else:
            pool = set(self.target.node_indices())

        pool -= mapping.used
        pool -= excluded
        return sorted(pool)

    def _consistent(self, node: int, candidate: int, mapping: Mapping) -> bool:
        """
        Full adjacency check of node -> candidate against every bound node.

        For each ordered pair not excluded by the entry/exit rule, the
        template edge and the target edge must both exist or both be absent.
        """
        if candidate in mapping.used:
            return False

        tpl = self.template
        has_edge = self.target.has_edge

        if not tpl.is_excluded_pair(node, node):
            if tpl.has_relevant_edge(node, node) != has_edge(candidate, candidate):
                return False

        for bound, image in mapping.forward.items():
            if not tpl.is_excluded_pair(node, bound):
                if tpl.has_relevant_edge(node, bound) != has_edge(candidate, image):
                    return False
            if not tpl.is_excluded_pair(bound, node):
                if tpl.has_relevant_edge(bound, node) != has_edge(image, candidate):
                    return False
        return True

    def _accept(self, mapping: Mapping) -> bool:
        """Final check on a complete mapping (boundary closure when configured)."""
        if not self.config.strict_boundary:
            return True
        return is_closed_region(self.template, self.target, mapping.forward)

    def _step(self) -> None:
        self.steps += 1
        max_steps = self.config.max_steps
        if max_steps is not None and self.steps > max_steps:
            raise SearchAbortedError(self.steps, max_steps)

    def resolve_anchors(self, anchors: Optional[Iterable[int]]) -> List[int]:
        if anchors is None:
            return self._ordered_nodes()

        if isinstance(anchors, (set, frozenset)):
            wanted = set(anchors)
            for anchor in sorted(wanted):
                if not self.target.has_node(anchor):
                    raise NodeNotFoundError(anchor)
            return [n for n in self._ordered_nodes() if n in wanted]

        resolved = list(dict.fromkeys(anchors))
        for anchor in resolved:
            if not self.target.has_node(anchor):
                raise NodeNotFoundError(anchor)
        return resolved

    def _ordered_nodes(self) -> List[int]:
        order = coerce_anchor_order(self.config.anchor_order)
        if order is AnchorOrder.RPO:
            return reverse_post_order(self.target, self.config.rpo_root)
        return list(self.target.node_indices())

    def _finish(self, found: int) -> None:
        logger.info(
            "Template %r: %d match(es), %d anchors, %d steps",
            self.template.name, found, self.anchors_searched, self.steps,
        )
        if self._trace is not None:
            self._trace.log_search_finished(self.template.name, self.steps, found)


# =============================================================================
# VALIDATION HELPERS
# =============================================================================

def is_valid_match(template: Template, target: GraphView, mapping: Dict[int, int]) -> bool:
    """
    Independent check of a complete mapping: total, injective, and
    adjacency-consistent on every non-excluded ordered pair.
    """
    if set(mapping) != set(template.nodes):
        return False
    if len(set(mapping.values())) != len(mapping):
        return False
    for u in template.nodes:
        for v in template.nodes:
            if template.is_excluded_pair(u, v):
                continue
            if template.has_relevant_edge(u, v) != target.has_edge(mapping[u], mapping[v]):
                return False
    return True


def is_closed_region(template: Template, target: GraphView, mapping: Dict[int, int]) -> bool:
    """
    True if target edges touch the mapped region only at its boundary:
    external predecessors only on the entry image, external successors only
    on the exit image.
    """
    region = set(mapping.values())
    for u, t in mapping.items():
        if u != template.entry and not target.predecessors(t) <= region:
            return False
        if u != template.exit and not target.successors(t) <= region:
            return False
    return True


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def find_matches(
    template: Template,
    target: GraphView,
    policy=MatchPolicy.ALL,
    anchors: Optional[Iterable[int]] = None,
    config: Optional[MatchConfig] = None,
) -> MatchResultSet:
    """Run a search with `policy` and return the result set."""
    return SubgraphMatcher(template, target, config=config).match(anchors=anchors, policy=policy)


def find_first_match(
    template: Template,
    target: GraphView,
    anchors: Optional[Iterable[int]] = None,
    config: Optional[MatchConfig] = None,
) -> Optional[Match]:
    """First match in anchor order, or None."""
    return find_matches(template, target, MatchPolicy.FIRST, anchors, config).first()

