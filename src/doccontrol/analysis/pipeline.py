"""Typed pipeline stages with bounded fan-out."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from doccontrol.constants import StageOutcome

logger = logging.getLogger(__name__)


@dataclass
class StageResult[TOutput]:
    """Outcome of a single pipeline stage execution.

    ``exception`` keeps the original error so callers can classify it;
    ``error`` is its display string.
    """

    stage_name: str
    output: TOutput | None
    duration_ms: float
    status: StageOutcome
    error: str | None = None
    exception: Exception | None = None

    def unwrap(self) -> TOutput:
        """Return the output, re-raising the stage's failure if any."""
        if self.exception is not None:
            raise self.exception
        if self.status != StageOutcome.COMPLETED:
            msg = f"Stage {self.stage_name} did not complete"
            raise RuntimeError(msg)
        return self.output  # type: ignore[return-value]


@dataclass
class PipelineStage[TInput, TOutput]:
    """A named, typed, async pipeline stage with error isolation.

    Exceptions are captured into the result; cancellation is not.
    """

    name: str
    execute: Callable[[TInput], Awaitable[TOutput]]

    async def run(
        self, input_data: TInput
    ) -> StageResult[TOutput]:
        start = time.monotonic()
        try:
            output = await self.execute(input_data)
            elapsed = (time.monotonic() - start) * 1000
            return StageResult(
                stage_name=self.name,
                output=output,
                duration_ms=elapsed,
                status=StageOutcome.COMPLETED,
            )
        except Exception as exc:
            elapsed = (time.monotonic() - start) * 1000
            logger.warning(
                "event=stage_failed stage=%s error=%s", self.name, exc
            )
            return StageResult(
                stage_name=self.name,
                output=None,
                duration_ms=elapsed,
                status=StageOutcome.FAILED,
                error=str(exc),
                exception=exc,
            )


@dataclass
class ParallelGroup[TInput]:
    """Run multiple stages concurrently on the same input.

    Used by the apply engine with one stage per document: distinct
    documents may proceed together, bounded by ``max_concurrency``.
    """

    name: str
    stages: list[PipelineStage[TInput, Any]] = field(
        default_factory=lambda: list[PipelineStage[Any, Any]]()
    )
    max_concurrency: int | None = None

    async def execute(
        self, input_data: TInput
    ) -> list[StageResult[Any]]:
        """Run all stages; results come back in stage order.

        Failed stages do not cancel siblings.
        """
        if not self.stages:
            return []

        results: list[StageResult[Any]] = [
            StageResult(
                stage_name=s.name,
                output=None,
                duration_ms=0.0,
                status=StageOutcome.SKIPPED,
            )
            for s in self.stages
        ]

        semaphore = (
            asyncio.Semaphore(self.max_concurrency)
            if self.max_concurrency
            else None
        )

        async def _run_stage(
            idx: int, stage: PipelineStage[TInput, Any]
        ) -> None:
            if semaphore:
                async with semaphore:
                    results[idx] = await stage.run(input_data)
            else:
                results[idx] = await stage.run(input_data)

        await asyncio.gather(
            *(_run_stage(i, stage) for i, stage in enumerate(self.stages))
        )
        logger.debug(
            "event=parallel_group_done group=%s stages=%d failed=%d",
            self.name,
            len(results),
            sum(r.status == StageOutcome.FAILED for r in results),
        )
        return results
