"""Graph evaluation, caching and preview orchestration.

AIDEV-NOTE: Evaluation is depth-first from the target. A node's inputs are
evaluated first (concurrently when EngineConfig.concurrent_siblings is set),
then the node itself is looked up in the EvaluationCache under a key built
from its id, the resolution, its params digest and the structural hashes of
its input fragments. Changing one node's params therefore misses the cache
for that node and every descendant only.
"""

import asyncio
import copy
import hashlib
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from .errors import CycleError, GraphError, MissingInputError
from .models import CacheKey, EngineConfig, Graph, Node, VectorFragment
from .operators import OPERATORS, IdGenerator, OperatorContext, OperatorSpec
from .rasterizer import Rasterizer, build_svg_document


def _retrieve_exception(task: asyncio.Task):
    # Callers see the error through their shield; a task nobody awaits any
    # more must not log "exception was never retrieved"
    if not task.cancelled():
        task.exception()


class EvaluationCache:
    """LRU map of CacheKey -> VectorFragment with in-flight deduplication.

    Concurrent requests for a key that is still being computed await the
    first computation instead of starting another one.
    """

    def __init__(self, max_entries: int = 512):
        self.max_entries = max_entries
        self._entries: "OrderedDict[CacheKey, VectorFragment]" = OrderedDict()
        self._in_flight: "dict[CacheKey, asyncio.Task]" = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def get(self, key: CacheKey) -> Optional[VectorFragment]:
        fragment = self._entries.get(key)
        if fragment is not None:
            self._entries.move_to_end(key)
        return fragment

    def put(self, key: CacheKey, fragment: VectorFragment):
        self._entries[key] = fragment
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def get_or_compute(
        self, key: CacheKey, compute: Callable[[], Awaitable[VectorFragment]]
    ) -> VectorFragment:
        """Return the cached fragment for key, computing it at most once.

        The computation runs as its own task and every caller awaits it
        through a shield, so cancelling one caller never cancels the work
        another caller is waiting on.
        """
        cached = self.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        task = self._in_flight.get(key)
        if task is not None:
            self.hits += 1
        else:
            self.misses += 1
            task = asyncio.ensure_future(self._compute(key, compute))
            task.add_done_callback(_retrieve_exception)
            self._in_flight[key] = task
        return await asyncio.shield(task)

    async def _compute(
        self, key: CacheKey, compute: Callable[[], Awaitable[VectorFragment]]
    ) -> VectorFragment:
        try:
            result = await compute()
            self.put(key, result)
            return result
        finally:
            self._in_flight.pop(key, None)

    def invalidate_node(self, node_id: str) -> int:
        """Drop every entry of one node. Returns the number removed."""
        stale = [key for key in self._entries if key.node_id == node_id]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def invalidate(self, graph: Graph, node_id: str) -> int:
        """Drop entries of a node and all of its descendants."""
        removed = self.invalidate_node(node_id)
        for descendant in graph.descendants(node_id):
            removed += self.invalidate_node(descendant)
        return removed

    def clear(self):
        self._entries.clear()
        self.hits = 0
        self.misses = 0


@dataclass
class _Pass:
    """State of one evaluation pass."""

    graph: Graph
    resolution: int
    ids: IdGenerator
    memo: "dict[str, asyncio.Future]" = field(default_factory=dict)
    visited: "set[str]" = field(default_factory=set)
    computed: "list[str]" = field(default_factory=list)


def check_acyclic(graph: Graph, node_id: str):
    """Verify the subgraph feeding node_id has no cycle.

    Raises:
        GraphError: If node_id or one of its ancestors does not exist
        CycleError: With the node ids along the cycle (first id repeated last)
    """
    if node_id not in graph.nodes:
        raise GraphError(f"Unknown node {node_id!r}")

    WHITE, GRAY, BLACK = 0, 1, 2
    color: dict[str, int] = {}
    # Iterative DFS; the stack holds (node, iterator over its sources)
    path: list[str] = [node_id]
    color[node_id] = GRAY
    stack = [(node_id, iter(graph.inputs_of(node_id).values()))]

    while stack:
        current, sources = stack[-1]
        advanced = False
        for source in sources:
            if source not in graph.nodes:
                raise GraphError(f"Node {current!r} has an input from unknown node {source!r}")
            state = color.get(source, WHITE)
            if state == GRAY:
                # Data flows source -> ... -> current, report it in that order
                start = path.index(source)
                cycle = list(reversed(path[start:]))
                raise CycleError(cycle + [cycle[0]])
            if state == WHITE:
                color[source] = GRAY
                path.append(source)
                stack.append((source, iter(graph.inputs_of(source).values())))
                advanced = True
                break
        if not advanced:
            color[current] = BLACK
            path.pop()
            stack.pop()


def upstream_hash(inputs: "dict[str, VectorFragment]") -> str:
    digest = hashlib.sha1()
    for port in sorted(inputs):
        digest.update(port.encode("utf-8"))
        digest.update(b"=")
        digest.update(inputs[port].structural_hash().encode("ascii"))
        digest.update(b";")
    return digest.hexdigest()


class GraphEvaluator:
    """Evaluates node graphs into vector fragments.

    Args:
        rasterizer: Back-end used by operators that need pixels (may be None
            when the graph contains no such operator)
        config: Engine settings (defaults when omitted)
        cache: Shared EvaluationCache (a private one is created when omitted)
    """

    def __init__(
        self,
        rasterizer: Optional[Rasterizer],
        config: Optional[EngineConfig] = None,
        cache: Optional[EvaluationCache] = None,
    ):
        self.rasterizer = rasterizer
        self.config = config or EngineConfig()
        self.cache = cache or EvaluationCache(self.config.max_cache_entries)
        self.visited: "set[str]" = set()  # Nodes touched by the last pass
        self.computed: "list[str]" = []  # Nodes whose operator ran in the last pass
        self._id_counter = 0

    async def evaluate(
        self,
        graph: Graph,
        target_node_id: str,
        resolution: int,
        cutoff_node_id: Optional[str] = None,
    ) -> VectorFragment:
        """Evaluate the graph up to a target node.

        Args:
            graph: Node graph
            target_node_id: Node whose output is wanted
            resolution: Output resolution in pixels
            cutoff_node_id: Partial evaluation; when given this node becomes
                the target and nothing outside its ancestry is touched

        Returns:
            The target's fragment

        Raises:
            CycleError: If the target's ancestry contains a cycle
            MissingInputError: If a required input port is unconnected
            GraphError: On other structural problems
        """
        target = cutoff_node_id if cutoff_node_id is not None else target_node_id
        if not isinstance(resolution, int) or resolution <= 0:
            raise GraphError(f"Resolution must be a positive integer, got {resolution!r}")

        check_acyclic(graph, target)

        state = _Pass(
            graph=graph,
            resolution=resolution,
            ids=IdGenerator(self.config.id_salt_length, start=self._id_counter),
        )
        if self.config.verbose:
            print(f"Evaluating {target!r} at {resolution}px")

        try:
            return await self._evaluate_node(target, state)
        finally:
            self._id_counter = max(self._id_counter, state.ids.counter)
            self.visited = state.visited
            self.computed = state.computed

    async def compile_document(
        self,
        graph: Graph,
        target_node_id: str,
        resolution: int,
        cutoff_node_id: Optional[str] = None,
    ) -> str:
        """Evaluate and wrap the result in a complete SVG document."""
        fragment = await self.evaluate(graph, target_node_id, resolution, cutoff_node_id)
        return build_svg_document(fragment.markup, fragment.shared_defs, resolution)

    def invalidate(self, graph: Graph, node_id: str) -> int:
        """Drop cached results for a node and its descendants (call after edits)."""
        return self.cache.invalidate(graph, node_id)

    async def _evaluate_node(self, node_id: str, state: _Pass) -> VectorFragment:
        # Each node runs at most once per pass, later requests share the task
        task = state.memo.get(node_id)
        if task is None:
            task = asyncio.ensure_future(self._compute_node(node_id, state))
            state.memo[node_id] = task
        return await task

    async def _gather_inputs(
        self, node_id: str, state: _Pass
    ) -> "dict[str, VectorFragment]":
        sources = state.graph.inputs_of(node_id)
        ports = sorted(sources)

        if self.config.concurrent_siblings:
            results = await asyncio.gather(
                *(self._evaluate_node(sources[port], state) for port in ports),
                return_exceptions=True,
            )
        else:
            results = []
            for port in ports:
                try:
                    results.append(await self._evaluate_node(sources[port], state))
                except GraphError as e:
                    results.append(e)

        # Every sibling has finished (and been cached); now surface the failure
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return dict(zip(ports, results))

    async def _compute_node(self, node_id: str, state: _Pass) -> VectorFragment:
        node = state.graph.nodes[node_id]
        state.visited.add(node_id)

        spec = OPERATORS.get(node.kind)
        if spec is None:
            raise GraphError(f"No operator registered for {node.kind.value!r}")

        inputs = await self._gather_inputs(node_id, state)
        for port in spec.required_ports:
            if port not in inputs:
                raise MissingInputError(node_id, port)

        # Params are read once per pass; edits made meanwhile wait for the next pass
        snapshot = Node(node.id, node.kind, copy.deepcopy(node.params))
        key = CacheKey(
            node_id=node_id,
            resolution=state.resolution,
            params_digest=snapshot.fingerprint(),
            upstream_hash=upstream_hash(inputs),
        )
        return await self.cache.get_or_compute(
            key, lambda: self._run_operator(snapshot, spec, inputs, state)
        )

    async def _run_operator(
        self,
        node: Node,
        spec: OperatorSpec,
        inputs: "dict[str, VectorFragment]",
        state: _Pass,
    ) -> VectorFragment:
        if self.config.verbose:
            print(f"  Evaluating node {node.id} ({node.kind.value})")

        ctx = OperatorContext(
            rasterizer=self.rasterizer,
            ids=state.ids,
            config=self.config,
            node_id=node.id,
        )
        state.computed.append(node.id)
        fragment = await spec.process(node.params, state.resolution, inputs, ctx)
        return fragment if fragment is not None else VectorFragment.empty()


class PreviewSession:
    """Latest-wins rendering for interactive previews.

    A render whose result arrives after a newer render was requested is
    discarded: render() returns None and latest is left untouched.
    """

    def __init__(self, evaluator: GraphEvaluator, resolution: Optional[int] = None):
        self.evaluator = evaluator
        self.resolution = resolution or evaluator.config.preview_resolution
        self.latest: Optional[VectorFragment] = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    async def render(
        self,
        graph: Graph,
        target_node_id: str,
        cutoff_node_id: Optional[str] = None,
    ) -> Optional[VectorFragment]:
        self._generation += 1
        generation = self._generation

        try:
            fragment = await self.evaluator.evaluate(
                graph, target_node_id, self.resolution, cutoff_node_id
            )
        except GraphError:
            if generation != self._generation:
                return None
            raise

        if generation != self._generation:
            return None

        self.latest = fragment
        return fragment
