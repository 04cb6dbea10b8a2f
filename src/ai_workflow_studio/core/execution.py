"""
Execution Engine - Concurrent, cancellable workflow execution.

This module provides the executor that walks a WorkflowGraph, dispatching
every node whose in-run dependencies have succeeded as its own asyncio
task. Completion of a task re-evaluates the readiness of the nodes still
waiting; nothing else blocks.

Guarantees:
- A node never starts before every non-paused, in-run dependency has
  reached success. Dependencies outside the run contribute their current
  stored output.
- A node that is queued or running belongs to exactly one run; a request
  to run it again is a no-op.
- Cancellation (stop, node or edge deletion) returns the node to idle and
  discards any late result.
- Generation errors are node-local. Direct dependents of a failed node are
  marked as failed with a missing-input reason and are not executed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable
from uuid import uuid4

from ai_workflow_studio.core.cost import GENERATION_KINDS, CostEstimator
from ai_workflow_studio.core.data_types import NodeKind, NodeStatus, compress_image, is_data_url
from ai_workflow_studio.core.errors import ValidationError
from ai_workflow_studio.core.graph import (
    GraphEvent,
    GraphEventKind,
    Node,
    NodeId,
    Point2D,
    WorkflowGraph,
)
from ai_workflow_studio.core.history import HistoryManager
from ai_workflow_studio.core.node_types import NodeType
from ai_workflow_studio.providers.base import (
    AuthenticationError,
    GenerationInput,
    ProviderAdapter,
    ProviderError,
    raise_for_output,
)

if TYPE_CHECKING:
    from ai_workflow_studio.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

# Split-grid child layout on the canvas
CHILD_GAP = 20.0
CHILD_OFFSET_X = 60.0


class NodeOutcome(Enum):
    """How a node's part in a run ended."""
    SUCCESS = auto()
    ERROR = auto()
    CANCELLED = auto()


_OUTCOME_MESSAGES = {
    NodeOutcome.SUCCESS: "Completed",
    NodeOutcome.ERROR: "Failed",
    NodeOutcome.CANCELLED: "Cancelled",
}


@dataclass
class ExecutionProgress:
    """Progress information emitted on every node state change."""
    run_id: str
    node_id: NodeId | None
    status: NodeStatus | None
    nodes_completed: int = 0
    nodes_total: int = 0
    message: str = ""
    error: str | None = None

    @property
    def progress_percent(self) -> float:
        if self.nodes_total == 0:
            return 0.0
        return (self.nodes_completed / self.nodes_total) * 100


@dataclass
class RunResult:
    """Summary of a finished run."""
    id: str
    trigger: NodeId | None
    node_ids: set[NodeId] = field(default_factory=set)
    statuses: dict[NodeId, NodeStatus] = field(default_factory=dict)
    executed: list[NodeId] = field(default_factory=list)  # in dispatch order
    started_at: float = field(default_factory=time.time)
    completed_at: float | None = None
    cancelled: bool = False
    skipped: bool = False  # trigger was already queued or running

    @property
    def succeeded(self) -> list[NodeId]:
        return [nid for nid, s in self.statuses.items() if s == NodeStatus.SUCCESS]

    @property
    def failed(self) -> list[NodeId]:
        return [nid for nid, s in self.statuses.items() if s == NodeStatus.ERROR]


@dataclass(eq=False)
class _Run:
    """Mutable bookkeeping for one in-progress run."""
    id: str
    trigger: NodeId | None
    node_ids: set[NodeId]
    tasks: dict[NodeId, asyncio.Task] = field(default_factory=dict)
    outcomes: dict[NodeId, NodeOutcome] = field(default_factory=dict)
    executed: list[NodeId] = field(default_factory=list)
    wakeup: asyncio.Event = field(default_factory=asyncio.Event)
    stopped: bool = False

    def pending(self) -> list[NodeId]:
        """Nodes neither running nor settled."""
        return sorted(
            nid for nid in self.node_ids
            if nid not in self.outcomes and nid not in self.tasks
        )


class NodeContext:
    """
    Context passed to node executors during execution.

    Provides access to:
    - Provider adapters for AI operations
    - The graph, read-only by convention
    """

    def __init__(self, executor: WorkflowExecutor, node: Node, run_id: str):
        self.node_id = node.id
        self.run_id = run_id
        self.graph = executor.graph
        self._providers = executor.providers

    def get_provider(self, provider_id: str) -> ProviderAdapter:
        """
        Resolve a usable adapter.

        Raises:
            ValidationError: Unknown or disabled provider.
            AuthenticationError: Provider has no credentials.
        """
        provider = self._providers.get_provider(provider_id)
        if provider is None:
            raise ValidationError(f"Provider not available: {provider_id}")
        if not provider.config.enabled:
            raise ValidationError(f"Provider {provider_id} is disabled")
        if not provider.is_configured:
            raise AuthenticationError(f"Provider {provider_id} needs an API key")
        return provider

    async def generate(self, provider_id: str, request: GenerationInput) -> str:
        """
        Run one generation call and return its output value.

        Data URL input images are downscaled and JPEG-encoded before the
        upload; remote URLs are passed through for the provider to fetch.

        Raises:
            ValidationError: An input image could not be decoded.
            ProviderError: The provider reported a failure.
        """
        provider = self.get_provider(provider_id)
        if request.images:
            request = replace(request, images=await self._compress_images(request.images))
        logger.debug("Node %s calling %s model %s", self.node_id, provider_id, request.model)
        output = await provider.generate(request)
        raise_for_output(output)
        return output.value

    async def _compress_images(self, images: list[str]) -> list[str]:
        loop = asyncio.get_running_loop()
        compressed = []
        for image in images:
            if is_data_url(image):
                try:
                    image = await loop.run_in_executor(None, compress_image, image)
                except ValueError as e:
                    raise ValidationError(f"Invalid input image: {e}") from e
            compressed.append(image)
        return compressed


class WorkflowExecutor:
    """
    Async execution engine for workflow graphs.

    Features:
    - Forward runs from a trigger node, or whole-graph runs
    - Concurrent dispatch of independent nodes
    - Per-node generation lock
    - Cancellation on stop and on structural changes
    - History and incurred-cost bookkeeping
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        history: HistoryManager | None = None,
        costs: CostEstimator | None = None,
        providers: ProviderRegistry | None = None,
    ):
        if history is None:
            history = HistoryManager()
            history.follow(graph)
        if providers is None:
            from ai_workflow_studio.providers.registry import get_registry
            providers = get_registry()

        self.graph = graph
        self.history = history
        self.costs = costs or CostEstimator(graph.id)
        self.providers = providers

        self._claimed: dict[NodeId, _Run] = {}
        self._tasks: dict[NodeId, asyncio.Task] = {}
        self._runs: list[_Run] = []
        self._structure_lock = asyncio.Lock()
        self._on_progress: Callable[[ExecutionProgress], None] | None = None
        self._unsubscribe = graph.subscribe(self._on_graph_event)

    def set_progress_callback(
        self,
        callback: Callable[[ExecutionProgress], None] | None,
    ) -> None:
        """Set the progress callback."""
        self._on_progress = callback

    def close(self) -> None:
        """Stop following the graph."""
        self._unsubscribe()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def is_busy(self, node_id: NodeId) -> bool:
        """True while the node is queued or running in some run."""
        return node_id in self._claimed

    @property
    def is_running(self) -> bool:
        return bool(self._runs)

    async def run_all(self) -> RunResult:
        """Run every node in the graph."""
        return await self.run(None)

    async def run_from(self, node_id: NodeId) -> RunResult:
        """Run a node and everything reachable downstream of it."""
        return await self.run(node_id)

    async def run(self, trigger: NodeId | None = None) -> RunResult:
        """
        Execute a run and wait for it to settle.

        Args:
            trigger: Node to run forward from, or None for the whole graph

        Returns:
            RunResult with the final status of every node in the run

        Raises:
            KeyError: If the trigger node doesn't exist.
        """
        run_id = uuid4().hex

        if trigger is not None:
            if self._is_claimed(trigger):
                logger.debug("Run request for busy node %s ignored", trigger)
                return RunResult(id=run_id, trigger=trigger, skipped=True, completed_at=time.time())
            candidates = self.graph.reachable_from(trigger)
        else:
            candidates = set(self.graph.nodes)

        run = _Run(
            id=run_id,
            trigger=trigger,
            node_ids={nid for nid in candidates if not self._is_claimed(nid)},
        )
        result = RunResult(id=run.id, trigger=trigger, node_ids=set(run.node_ids))

        self._runs.append(run)
        for nid in run.node_ids:
            self._claimed[nid] = run
            node = self.graph.require_node(nid)
            node.mark_queued()
            self._report(run, node, "Queued")

        logger.info("Run %s started with %d nodes", run.id, len(run.node_ids))

        try:
            await self._drive(run)
        except asyncio.CancelledError:
            run.stopped = True
            result.cancelled = True
            await self._cancel_tasks(run)
            raise
        finally:
            self._finish(run)
            result.cancelled = result.cancelled or run.stopped
            result.executed = list(run.executed)
            result.completed_at = time.time()
            for nid in run.node_ids:
                node = self.graph.get_node(nid)
                if node is not None:
                    result.statuses[nid] = node.status

        logger.info(
            "Run %s finished: %d succeeded, %d failed%s",
            run.id,
            len(result.succeeded),
            len(result.failed),
            " (stopped)" if result.cancelled else "",
        )
        return result

    def stop(self) -> int:
        """
        Stop every active run.

        In-flight nodes are cancelled and, like nodes still waiting,
        return to idle. Returns the number of runs stopped.
        """
        for run in self._runs:
            run.stopped = True
            for task in run.tasks.values():
                task.cancel()
            run.wakeup.set()
        return len(self._runs)

    def cancel_node(self, node_id: NodeId) -> bool:
        """
        Cancel a node's part in its run.

        A running node's task is cancelled; a queued node is withdrawn.
        Returns False if the node isn't queued or running.
        """
        if self._cancel_in_flight(node_id):
            return True

        run = self._claimed.get(node_id)
        if run is None:
            return False
        run.outcomes[node_id] = NodeOutcome.CANCELLED
        self._release(run, node_id)
        node = self.graph.get_node(node_id)
        if node is not None:
            node.mark_idle()
            self._report(run, node, "Cancelled")
        run.wakeup.set()
        return True

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    async def _drive(self, run: _Run) -> None:
        """Dispatch ready nodes and collect completions until the run settles."""
        while True:
            if not run.stopped:
                self._dispatch_ready(run)
            if not run.tasks:
                return

            run.wakeup.clear()
            waiter = asyncio.ensure_future(run.wakeup.wait())
            try:
                await asyncio.wait(
                    {*run.tasks.values(), waiter},
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                waiter.cancel()

            self._collect(run)

    def _dispatch_ready(self, run: _Run) -> None:
        """Start or settle every pending node whose dependencies have settled."""
        changed = True
        while changed:
            changed = False
            for nid in run.pending():
                node = self.graph.get_node(nid)
                if node is None:
                    run.outcomes[nid] = NodeOutcome.CANCELLED
                    self._release(run, nid)
                    changed = True
                    continue

                verdict = self._readiness(run, nid)
                if verdict is None:
                    continue

                changed = True
                if verdict == NodeOutcome.SUCCESS:
                    self._launch(run, node)
                elif verdict == NodeOutcome.ERROR:
                    failed = sorted(
                        d for d in self.graph.dependencies_of(nid)
                        if self._dependency_failed(run, d)
                    )
                    node.mark_error(f"Missing input: upstream node {', '.join(failed)} failed")
                    run.outcomes[nid] = NodeOutcome.ERROR
                    self._release(run, nid)
                    self._report(run, node, "Missing input", error=node.error)
                else:
                    node.mark_idle()
                    run.outcomes[nid] = NodeOutcome.CANCELLED
                    self._release(run, nid)
                    self._report(run, node, "Upstream cancelled")

    def _readiness(self, run: _Run, node_id: NodeId) -> NodeOutcome | None:
        """
        Decide what to do with a pending node.

        Returns SUCCESS to dispatch, ERROR or CANCELLED to settle without
        executing, or None to keep waiting.
        """
        waiting = False
        cancelled = False
        for dep in self.graph.dependencies_of(node_id):
            if self._dependency_failed(run, dep):
                return NodeOutcome.ERROR
            if dep not in run.node_ids:
                continue
            outcome = run.outcomes.get(dep)
            if outcome is None:
                waiting = True
            elif outcome == NodeOutcome.CANCELLED:
                cancelled = True

        if waiting:
            return None
        if cancelled:
            return NodeOutcome.CANCELLED
        return NodeOutcome.SUCCESS

    def _dependency_failed(self, run: _Run, dep: NodeId) -> bool:
        if dep in run.node_ids:
            return run.outcomes.get(dep) == NodeOutcome.ERROR
        # Outside the run: a failed node has no trustworthy output
        node = self.graph.get_node(dep)
        return node is not None and node.status == NodeStatus.ERROR

    def _launch(self, run: _Run, node: Node) -> None:
        task = asyncio.create_task(self._execute_node(run, node.id), name=f"node:{node.id}")
        run.tasks[node.id] = task
        run.executed.append(node.id)
        self._tasks[node.id] = task

    def _collect(self, run: _Run) -> None:
        """Record outcomes of finished tasks."""
        for nid, task in list(run.tasks.items()):
            if not task.done():
                continue
            del run.tasks[nid]
            if self._tasks.get(nid) is task:
                del self._tasks[nid]

            node = self.graph.get_node(nid)
            if task.cancelled():
                outcome = NodeOutcome.CANCELLED
                if node is not None:
                    node.mark_idle()
            elif task.exception() is not None:
                error = task.exception()
                logger.error("Node %s failed while storing its result", nid, exc_info=error)
                outcome = NodeOutcome.ERROR
                if node is not None:
                    node.mark_error(str(error) or type(error).__name__)
            else:
                outcome = task.result()

            run.outcomes[nid] = outcome
            self._release(run, nid)
            if node is not None:
                self._report(run, node, _OUTCOME_MESSAGES[outcome], error=node.error)

    async def _cancel_tasks(self, run: _Run) -> None:
        tasks = list(run.tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._collect(run)

    def _is_claimed(self, node_id: NodeId) -> bool:
        """
        True if this executor or any other holds the node.

        Node status lives on the shared Node, so it also covers runs
        driven by another executor over the same graph.

        Raises:
            KeyError: If the node doesn't exist.
        """
        return node_id in self._claimed or self.graph.require_node(node_id).status.is_busy

    def _release(self, run: _Run, node_id: NodeId) -> None:
        if self._claimed.get(node_id) is run:
            del self._claimed[node_id]

    def _finish(self, run: _Run) -> None:
        """Return nodes the run never reached to idle and drop the run."""
        for nid in run.node_ids:
            if nid not in run.outcomes:
                run.outcomes[nid] = NodeOutcome.CANCELLED
                node = self.graph.get_node(nid)
                if node is not None and node.status.is_busy:
                    node.mark_idle()
            self._release(run, nid)
        if run in self._runs:
            self._runs.remove(run)

    # -------------------------------------------------------------------------
    # Node execution
    # -------------------------------------------------------------------------

    async def _execute_node(self, run: _Run, node_id: NodeId) -> NodeOutcome:
        """Execute a single node. Only cancellation propagates as an exception."""
        node = self.graph.require_node(node_id)
        node_type = self.graph.node_type(node)
        predicted_cost = self.costs.predict(node)

        node.mark_running()
        self._report(run, node, f"Executing {node.kind.value}")

        try:
            inputs = self._gather_inputs(node, node_type)
            updates: dict[str, Any] = {}
            if node_type.executor is not None:
                context = NodeContext(self, node, run.id)
                updates = await node_type.executor(inputs, dict(node.data), context)
        except asyncio.CancelledError:
            node.mark_idle()
            logger.debug("Node %s cancelled", node_id)
            raise
        except (ValidationError, ProviderError) as e:
            node.mark_error(str(e))
            logger.warning("Node %s failed: %s", node_id, e)
            return NodeOutcome.ERROR
        except Exception as e:
            logger.exception("Node %s raised an unexpected error", node_id)
            node.mark_error(str(e) or type(e).__name__)
            return NodeOutcome.ERROR

        if node_id not in self.graph:
            # Deleted while the call was in flight
            return NodeOutcome.CANCELLED

        node.data.update(updates)

        if node_type.history_field and updates.get(node_type.history_field) is not None:
            self.history.append(
                node.id,
                updates[node_type.history_field],
                prompt=node.data.get("inputPrompt"),
                model=self._model_label(node),
            )

        if node.kind in GENERATION_KINDS:
            self.costs.record_incurred(node.id, predicted_cost)

        if node.kind == NodeKind.SPLIT_GRID:
            await self._replace_split_grid_children(node)

        node.mark_success()
        return NodeOutcome.SUCCESS

    def _gather_inputs(self, node: Node, node_type: NodeType) -> dict[str, Any]:
        """
        Resolve each input handle's current value.

        A paused edge leaves its handle absent. The fallback field is
        consulted only when no edge targets the handle.
        """
        inputs: dict[str, Any] = {}
        for input_def in node_type.inputs:
            edge = self.graph.get_input_edge(node.id, input_def.name)
            if edge is None:
                if input_def.fallback_field:
                    value = node.data.get(input_def.fallback_field)
                    if value not in (None, "", []):
                        inputs[input_def.name] = value
                continue
            if edge.paused:
                continue
            value = self.output_value(edge.source.node_id, edge.source.handle)
            if value is not None:
                inputs[input_def.name] = value
        return inputs

    def output_value(self, node_id: NodeId, handle: str) -> Any | None:
        """The value a node currently exposes on an output handle."""
        node = self.graph.get_node(node_id)
        if node is None:
            return None
        node_type = self.graph.node_type(node)
        output_def = node_type.get_output(handle)
        if output_def is None:
            return None

        if output_def.source_field == node_type.history_field:
            selected = self.history.current(node_id)
            if selected is not None:
                return selected

        value = node.data.get(output_def.source_field)
        if output_def.indexed:
            index = output_def.index_of(handle)
            if not isinstance(value, list) or index is None or index >= len(value):
                return None
            return value[index]
        return value

    @staticmethod
    def _model_label(node: Node) -> str | None:
        selected = node.data.get("selectedModel") or {}
        return selected.get("modelId") or node.data.get("model")

    async def _replace_split_grid_children(self, node: Node) -> None:
        """
        Delete the split-grid node's previous children and create one
        generate-image child per cell, each wired from its cell handle.
        """
        async with self._structure_lock:
            for child_id in self.graph.children_of(node.id):
                self.graph.remove_node(child_id)

            rows = int(node.data["gridRows"])
            cols = int(node.data["gridCols"])
            settings = node.data.get("generateSettings") or {}
            model = settings.get("model", "nano-banana-pro")
            child_type = self.graph.registry.get(NodeKind.GENERATE_IMAGE)
            width = child_type.default_width if child_type else 300.0
            height = child_type.default_height if child_type else 300.0
            origin = Point2D(node.position.x + node.size.width + CHILD_OFFSET_X, node.position.y)

            child_ids: list[NodeId] = []
            for index in range(rows * cols):
                row, col = divmod(index, cols)
                child = self.graph.create_node(
                    NodeKind.GENERATE_IMAGE,
                    position=origin + Point2D(col * (width + CHILD_GAP), row * (height + CHILD_GAP)),
                    parent_id=node.id,
                    prompt=node.data.get("defaultPrompt", ""),
                    model=model,
                    aspectRatio=settings.get("aspectRatio", "1:1"),
                    resolution=settings.get("resolution", "1K"),
                    useGoogleSearch=settings.get("useGoogleSearch", False),
                    selectedModel={"provider": "gemini", "modelId": model, "displayName": model},
                )
                self.graph.connect(node.id, f"cell-{index}", child.id, "image")
                child_ids.append(child.id)

            node.data["childNodeIds"] = child_ids
            logger.info("Split grid %s created %d children", node.id, len(child_ids))

    # -------------------------------------------------------------------------
    # Graph events and progress
    # -------------------------------------------------------------------------

    def _on_graph_event(self, event: GraphEvent) -> None:
        if event.kind == GraphEventKind.NODE_REMOVED:
            for nid in (*event.node_ids, *event.affected_node_ids):
                self._cancel_in_flight(nid)
        elif event.kind == GraphEventKind.EDGE_REMOVED:
            for nid in event.affected_node_ids:
                self._cancel_in_flight(nid)
        elif event.kind in (GraphEventKind.NODE_ADDED, GraphEventKind.EDGE_ADDED):
            return

        # Readiness may have changed for waiting nodes
        for run in self._runs:
            run.wakeup.set()

    def _cancel_in_flight(self, node_id: NodeId) -> bool:
        task = self._tasks.get(node_id)
        if task is None or task.done():
            return False
        logger.debug("Cancelling in-flight node %s", node_id)
        task.cancel()
        return True

    def _report(
        self,
        run: _Run,
        node: Node,
        message: str,
        error: str | None = None,
    ) -> None:
        """Report progress to listeners."""
        if self._on_progress is None:
            return
        self._on_progress(ExecutionProgress(
            run_id=run.id,
            node_id=node.id,
            status=node.status,
            nodes_completed=len(run.outcomes),
            nodes_total=len(run.node_ids),
            message=message,
            error=error,
        ))
