"""Sequential workflow execution engine."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .cache import CacheStore
from .constants import DEFAULT_BACKOFF_BASE
from .contracts import (
    CacheStats,
    ErrorPolicy,
    StepResult,
    Workflow,
    WorkflowProgress,
    WorkflowResult,
    WorkflowStep,
    utcnow,
)
from .errors import ReferenceResolutionError, ToolExecutionError, WorkflowAbortedError
from .events import EventChannel, WorkflowEvent
from .references import ReferenceResolver, ResolutionContext
from .tools import ToolInvoker, as_tool_result, declared_ttl
from .utils.retry import Sleep, compute_backoff, schedule_retry

logger = logging.getLogger(__name__)


@dataclass
class _StepOutcome:
    """Value of the last attempt of a step, before it becomes a StepResult."""

    success: bool
    value: Any = None
    error: Optional[str] = None
    retry_count: int = 0
    from_cache: bool = False
    cache_key: Optional[str] = None


def step_progress(index: int, total: int) -> int:
    """Percentage after step ``index`` (0-based) completes, rounded half up."""
    return int(100 * (index + 1) / total + 0.5)


class WorkflowRunner:
    """Executes workflows step by step.

    One runner can serve many concurrent ``run`` calls: everything that
    belongs to a single run lives inside that call. The cache store and the
    event channel are shared.
    """

    def __init__(
        self,
        invoker: ToolInvoker,
        cache: Optional[CacheStore] = None,
        events: Optional[EventChannel] = None,
        resolver: Optional[ReferenceResolver] = None,
        sleep: Optional[Sleep] = None,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
    ) -> None:
        self.invoker = invoker
        self.cache = cache or CacheStore()
        self.events = events or EventChannel()
        self.resolver = resolver or ReferenceResolver()
        self._sleep = sleep or asyncio.sleep
        self.backoff_base = backoff_base

    async def run(self, workflow: Workflow | Dict[str, Any]) -> WorkflowResult:
        """Run ``workflow`` to completion; failures are reported, not raised."""

        start_time = utcnow()
        try:
            workflow = Workflow.from_raw(workflow)
        except ValidationError as e:
            workflow_id = workflow.get("id", "") if isinstance(workflow, dict) else ""
            logger.error(f"Invalid workflow definition {workflow_id!r}: {e}")
            return WorkflowResult(
                workflow_id=str(workflow_id or ""),
                success=False,
                error=f"Invalid workflow definition: {e}",
                start_time=start_time,
                end_time=utcnow(),
            )

        step_results: Dict[str, StepResult] = {}
        cache_stats = CacheStats()

        try:
            if workflow.clear_cache:
                await self.cache.clear_workflow_cache(workflow.id)
                workflow.clear_cache = False

            await self._emit(
                WorkflowEvent.WORKFLOW_STARTED,
                workflow.id,
                status="started",
                message=f"Starting workflow {workflow.name or workflow.id}",
            )
            logger.info(f"Starting workflow {workflow.id} (steps={len(workflow.steps)})")

            total = len(workflow.steps)
            for index, step in enumerate(workflow.steps):
                await self._run_step(workflow, index, total, step, step_results, cache_stats)

        except WorkflowAbortedError as e:
            result = WorkflowResult(
                workflow_id=workflow.id,
                success=False,
                error=e.message,
                start_time=start_time,
                end_time=utcnow(),
                step_results=step_results,
                cache_stats=cache_stats,
            )
            logger.error(f"Workflow {workflow.id} failed at step {e.step_id}: {e.message}")
            await self._emit(
                WorkflowEvent.WORKFLOW_FAILED, workflow.id, status="failed", message=e.message
            )
            return result
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.exception(f"Workflow {workflow.id} failed unexpectedly")
            await self._emit(
                WorkflowEvent.WORKFLOW_FAILED, workflow.id, status="failed", message=message
            )
            return WorkflowResult(
                workflow_id=workflow.id,
                success=False,
                error=message,
                start_time=start_time,
                end_time=utcnow(),
                step_results=step_results,
                cache_stats=cache_stats,
            )

        result = WorkflowResult(
            workflow_id=workflow.id,
            success=True,
            start_time=start_time,
            end_time=utcnow(),
            step_results=step_results,
            cache_stats=cache_stats,
        )
        logger.info(
            f"Workflow {workflow.id} completed "
            f"(cache_hits={cache_stats.cache_hits}, cache_misses={cache_stats.cache_misses})"
        )
        await self._emit(
            WorkflowEvent.WORKFLOW_COMPLETED,
            workflow.id,
            status="completed",
            progress=100,
            message="Workflow completed",
        )
        return result

    # ------------------------------------------------------------------
    async def _run_step(
        self,
        workflow: Workflow,
        index: int,
        total: int,
        step: WorkflowStep,
        step_results: Dict[str, StepResult],
        cache_stats: CacheStats,
    ) -> None:
        progress = step_progress(index, total)
        await self._emit(
            WorkflowEvent.STEP_STARTED,
            workflow.id,
            step.id,
            status="started",
            progress=progress,
            message=f"Running {step.tool_id}",
        )

        start_time = utcnow()
        if step.delay:
            await self._sleep(step.delay / 1000)

        context = ResolutionContext(
            current_step_index=index,
            workflow_steps=workflow.steps,
            previous_results=step_results,
        )
        outcome = await self._execute(workflow, step, context, step_results, cache_stats, progress)

        step_results[step.id] = StepResult(
            step_id=step.id,
            tool_id=step.tool_id,
            success=outcome.success,
            result=outcome.value if outcome.success else None,
            error=outcome.error,
            start_time=start_time,
            end_time=utcnow(),
            retry_count=outcome.retry_count,
            from_cache=outcome.from_cache,
            cache_key=outcome.cache_key,
        )

        if outcome.success:
            await self._emit(
                WorkflowEvent.STEP_COMPLETED,
                workflow.id,
                step.id,
                status="completed",
                progress=progress,
                from_cache=outcome.from_cache,
            )
            return

        await self._emit(
            WorkflowEvent.STEP_FAILED,
            workflow.id,
            step.id,
            status="failed",
            progress=progress,
            message=outcome.error,
        )
        if step.on_error == ErrorPolicy.STOP:
            raise WorkflowAbortedError(
                f'Step "{step.id}" failed: {outcome.error}', workflow.id, step.id
            )
        logger.warning(
            f"Step {step.id} failed with on_error={step.on_error.value}; continuing workflow {workflow.id}"
        )

    async def _execute(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        context: ResolutionContext,
        step_results: Dict[str, StepResult],
        cache_stats: CacheStats,
        progress: int,
    ) -> _StepOutcome:
        retries = 0
        counted_miss = False
        while True:
            try:
                inputs = self.resolver.resolve(step.inputs, step_results, context)
            except ReferenceResolutionError as e:
                logger.error(f"Step {step.id}: {e.message}")
                return _StepOutcome(success=False, error=e.message, retry_count=retries)

            cache_key = None
            async with AsyncExitStack() as stack:
                if step.caching_enabled:
                    cache_key = self.cache.derive_key(
                        step.id, step.tool_id, inputs, step.cache.key
                    )
                if cache_key is not None:
                    await stack.enter_async_context(self.cache.key_lock(workflow.id, cache_key))
                    entry = await self.cache.lookup(workflow.id, cache_key)
                    if entry is not None:
                        cache_stats.cache_hits += 1
                        logger.info(f"Step {step.id} cache hit (key={cache_key})")
                        await self._emit(
                            WorkflowEvent.STEP_CACHE_HIT,
                            workflow.id,
                            step.id,
                            status="cache-hit",
                            progress=progress,
                            from_cache=True,
                        )
                        return _StepOutcome(
                            success=True,
                            value=entry.value,
                            retry_count=retries,
                            from_cache=True,
                            cache_key=cache_key,
                        )
                    if not counted_miss:
                        cache_stats.cache_misses += 1
                        counted_miss = True

                try:
                    value = await self._invoke(step, inputs)
                except ToolExecutionError as e:
                    error = e.message
                else:
                    if cache_key is not None:
                        written = await self.cache.set(
                            workflow.id,
                            cache_key,
                            value,
                            ttl=step.cache.ttl or declared_ttl(self.invoker, step.tool_id),
                            persistent=step.cache.persistent,
                        )
                        if written is not None:
                            cache_stats.steps_cached.append(step.id)
                    return _StepOutcome(
                        success=True, value=value, retry_count=retries, cache_key=cache_key
                    )

            if retries >= step.retry_count:
                logger.error(f"Step {step.id} failed after {retries + 1} attempt(s): {error}")
                return _StepOutcome(
                    success=False, error=error, retry_count=retries, cache_key=cache_key
                )

            retries += 1
            delay = compute_backoff(retries, base=self.backoff_base)
            logger.warning(
                f"Step {step.id} failed ({error}); retry {retries}/{step.retry_count} in {delay}s"
            )
            await self._emit(
                WorkflowEvent.STEP_RETRYING,
                workflow.id,
                step.id,
                status="retrying",
                progress=progress,
                message=f"Retry {retries}/{step.retry_count}: {error}",
            )
            await schedule_retry(retries, base=self.backoff_base, sleep=self._sleep)

    async def _invoke(self, step: WorkflowStep, inputs: Any) -> Any:
        """Run the tool; any failure surfaces as ``ToolExecutionError``."""
        try:
            raw = await self.invoker.run_tool(step.tool_id, inputs)
            result = as_tool_result(raw)
        except ToolExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionError(str(e) or e.__class__.__name__, step.tool_id) from e
        if not result.success:
            raise ToolExecutionError(
                result.error_message,
                step.tool_id,
                details=result.error.details if result.error else None,
            )
        return result.data

    async def _emit(
        self,
        event: WorkflowEvent,
        workflow_id: str,
        step_id: str = "",
        *,
        status: str,
        progress: Optional[int] = None,
        message: Optional[str] = None,
        from_cache: Optional[bool] = None,
    ) -> None:
        await self.events.emit(
            event,
            WorkflowProgress(
                workflow_id=workflow_id,
                step_id=step_id,
                status=status,
                progress=progress,
                message=message,
                from_cache=from_cache,
            ),
        )
