"""
CFGMATCH PARALLEL - Anchor-Partitioned Search

Each anchor's search is independent: it reads the shared target graph and
grows a private Mapping. ParallelMatcher splits the anchor list into
contiguous chunks, runs one SubgraphMatcher per chunk on a thread pool, and
merges chunk results in anchor order, so the output is identical to a
sequential search with the same policy.

Policies:
- ALL:      workers enumerate their chunk; results concatenated in order
- FIRST:    workers stop at their first match; earliest chunk wins
- DISJOINT: workers enumerate ALL matches per anchor; the greedy disjoint
            selection is replayed in anchor order during the merge

The target graph must not be mutated until match() returns.
max_steps (if configured) bounds each worker separately.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Iterable, List, Optional, Set

from core.graph import GraphView
from core.matcher import SearchAbortedError, SubgraphMatcher
from core.ontology import MatchPolicy, coerce_policy
from core.results import MatchResultSet
from core.schemas import Match, MatchConfig
from core.template import Template

if TYPE_CHECKING:
    from infrastructure.logger import SearchLogger

logger = logging.getLogger(__name__)


class ParallelMatcher:
    """
    Thread-pool front end for SubgraphMatcher.

    Usage:
        pm = ParallelMatcher(template, cfg, max_workers=4)
        results = pm.match(policy="all")
    """

    def __init__(
        self,
        template: Template,
        target: GraphView,
        max_workers: Optional[int] = None,
        config: Optional[MatchConfig] = None,
        logger: Optional["SearchLogger"] = None,
    ):
        self.template = template
        self.target = target
        self.max_workers = max_workers or 4
        self.config = config or MatchConfig()
        self.config.validate()
        self._trace = logger
        # Validates the template and resolves anchor order once
        self._planner = SubgraphMatcher(template, target, config=self.config)

    def _chunks(self, anchors: List[int]) -> List[List[int]]:
        if not anchors:
            return []
        workers = min(self.max_workers, len(anchors))
        size = -(-len(anchors) // workers)
        return [anchors[i:i + size] for i in range(0, len(anchors), size)]

    def _run_chunk(self, chunk: List[int], policy: MatchPolicy) -> MatchResultSet:
        matcher = SubgraphMatcher(self.template, self.target, config=self.config, logger=self._trace)
        return matcher.match(anchors=chunk, policy=policy)

    def match(self, anchors: Optional[Iterable[int]] = None, policy=None) -> MatchResultSet:
        """
        Search all anchors in parallel.

        Raises:
            SearchAbortedError: a worker exceeded max_steps before the
                answer was known; `matches` holds the partial results of
                the chunks up to it, reduced under `policy` (a FIRST search
                whose earlier chunk already matched returns normally)
        """
        policy = coerce_policy(policy if policy is not None else self.config.policy)
        anchor_list = self._planner.resolve_anchors(anchors)
        chunks = self._chunks(anchor_list)

        worker_policy = MatchPolicy.ALL if policy is MatchPolicy.DISJOINT else policy
        logger.debug(
            "Parallel search for template %r: %d anchors in %d chunks, policy=%s",
            self.template.name, len(anchor_list), len(chunks), policy.value,
        )

        results = MatchResultSet(policy)
        collected: List[Match] = []
        with ThreadPoolExecutor(max_workers=max(1, len(chunks))) as pool:
            futures = [pool.submit(self._run_chunk, chunk, worker_policy) for chunk in chunks]
            try:
                for future in futures:
                    # An earlier chunk already holds the first match
                    if policy is MatchPolicy.FIRST and collected:
                        break
                    try:
                        chunk_result = future.result()
                    except SearchAbortedError as e:
                        e.matches = _select(collected + e.matches, policy, anchor_list)
                        raise
                    results.steps += chunk_result.steps
                    results.anchors_searched += chunk_result.anchors_searched
                    collected.extend(chunk_result)
            finally:
                for pending in futures:
                    pending.cancel()

        results.extend(_select(collected, policy, anchor_list))
        return results


def _select(matches: List[Match], policy: MatchPolicy, anchor_order: List[int]) -> List[Match]:
    """Reduce merged chunk results to what a sequential search under `policy` keeps."""
    if policy is MatchPolicy.FIRST:
        return matches[:1]
    if policy is MatchPolicy.DISJOINT:
        return select_disjoint(matches, anchor_order)
    return matches


def select_disjoint(matches: List[Match], anchor_order: List[int]) -> List[Match]:
    """
    Greedy disjoint selection over an ALL-policy enumeration.

    For each anchor in order (skipping anchors already covered), keep the
    first match rooted there that shares no target node with the matches
    kept so far.
    """
    by_anchor = {}
    for match in matches:
        by_anchor.setdefault(match.anchor, []).append(match)

    used: Set[int] = set()
    selected: List[Match] = []
    for anchor in anchor_order:
        if anchor in used:
            continue
        for match in by_anchor.get(anchor, ()):
            if used.isdisjoint(match.target_nodes):
                selected.append(match)
                used.update(match.target_nodes)
                break
    return selected
