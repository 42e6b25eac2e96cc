"""
Response Recovery Engine - turns raw model text into a StructuredResponse.

Escalates strictly forward through four stages, stopping at the first
one that produces a structured result:

    S0 STRICT     decode the text as-is
    S1 REPAIRED   one pass of deterministic textual repairs, decode again
    S2 CORRECTED  ask the model to reformat (only with a correction callback),
                  up to max_attempts times, each bounded by a timeout
    S3 HEURISTIC  treat the text as prose and scrape what we can

S3 cannot fail, so recover() always returns. Stage failures are internal
(StageFailed) and end up only in metadata.diagnostics.

Cancellation: pass an asyncio.Event and/or an absolute loop-time deadline.
When either fires during S2 the engine stops waiting on the callback and
falls through to S3.
"""

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from model_salvage.config import RecoveryConfig
from model_salvage.correction import CorrectionCallback, build_correction_prompt
from model_salvage.heuristics import excerpt, extract_recommendations
from model_salvage.repair import RepairPolicy
from model_salvage.schemas import (
    CANONICAL_KEYS,
    ConfidenceLevel,
    CorrectionAborted,
    CorrectionFailed,
    RecoveryDiagnostics,
    RecoveryStage,
    ResponseMetadata,
    StageFailed,
    StructuredResponse,
    TaskCompletionStatus,
)

logger = logging.getLogger(__name__)

_STAGE_ORDER = list(RecoveryStage)


def _is_async_callable(fn: Any) -> bool:
    """True for coroutine functions, including objects with an async __call__."""
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None))


@dataclass
class ParseAttempt:
    """One decode try. Logged, never stored."""
    stage: RecoveryStage
    text: str
    outcome: str

    def log(self) -> None:
        logger.debug(f"[{self.stage.value}] {self.outcome} ({len(self.text)} chars)")


@dataclass
class RecoveryState:
    """
    Progress of one raw response through the engine.

    One instance per recover() call; nothing is shared between calls.
    """
    raw_text: str
    max_attempts: int
    attempt_count: int = 0
    stage: RecoveryStage = RecoveryStage.STRICT
    auto_corrected: bool = False
    repairs_applied: list[str] = field(default_factory=list)

    def advance(self, stage: RecoveryStage) -> None:
        """Move to a later stage. Escalation never goes backwards."""
        if _STAGE_ORDER.index(stage) < _STAGE_ORDER.index(self.stage):
            raise ValueError(f"Cannot move from {self.stage.value} back to {stage.value}")
        self.stage = stage

    def next_attempt(self) -> int:
        """Consume one correction attempt and return its 1-based number."""
        if self.attempt_count >= self.max_attempts:
            raise CorrectionAborted(f"All {self.max_attempts} correction attempts used")
        self.attempt_count += 1
        return self.attempt_count

    def diagnostics(self) -> RecoveryDiagnostics:
        return RecoveryDiagnostics(
            stage_reached=self.stage,
            correction_attempts=self.attempt_count,
            auto_corrected=self.auto_corrected,
            repairs_applied=list(self.repairs_applied),
        )


# ─────────────────────────────────────────────────────────────────────
# DECODING
# ─────────────────────────────────────────────────────────────────────


def _enum_value(enum_cls, value: Any, default):
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    return default


def normalize_response(data: dict) -> StructuredResponse:
    """
    Coerce a decoded canonical object into a StructuredResponse.

    Missing or ill-typed sections get defaults; unknown keys are kept.
    """
    deliverables = data.get("deliverables")
    if deliverables is None:
        deliverables = {}
    elif not isinstance(deliverables, dict):
        deliverables = {"analysis": deliverables}

    memory_operations = data.get("memory_operations")
    if not isinstance(memory_operations, list):
        memory_operations = []

    metadata = data.get("metadata")
    metadata = dict(metadata) if isinstance(metadata, dict) else {}
    metadata.pop("diagnostics", None)
    metadata["confidence_level"] = _enum_value(
        ConfidenceLevel, metadata.get("confidence_level"), ConfidenceLevel.MEDIUM
    )
    metadata["task_completion_status"] = _enum_value(
        TaskCompletionStatus, metadata.get("task_completion_status"), TaskCompletionStatus.COMPLETE
    )

    extra = {k: v for k, v in data.items() if k not in CANONICAL_KEYS}
    return StructuredResponse.model_validate({
        **extra,
        "deliverables": deliverables,
        "memory_operations": memory_operations,
        "metadata": ResponseMetadata.model_validate(metadata),
    })


def decode_canonical(text: str, stage: RecoveryStage) -> StructuredResponse:
    """
    Decode text as the canonical deliverable shape.

    Raises:
        StageFailed: Not JSON, not an object, or none of the canonical keys
    """
    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as e:
        ParseAttempt(stage, text, f"not valid JSON: {e}").log()
        raise StageFailed(f"{stage.value}: not valid JSON") from e

    if not isinstance(data, dict) or not any(key in data for key in CANONICAL_KEYS):
        ParseAttempt(stage, text, "JSON is not the canonical shape").log()
        raise StageFailed(f"{stage.value}: not the canonical shape")

    try:
        response = normalize_response(data)
    except ValidationError as e:
        ParseAttempt(stage, text, f"invalid canonical object: {e}").log()
        raise StageFailed(f"{stage.value}: invalid canonical object") from e

    ParseAttempt(stage, text, "decoded").log()
    return response


# ─────────────────────────────────────────────────────────────────────
# ENGINE
# ─────────────────────────────────────────────────────────────────────


class RecoveryEngine:
    """
    Staged parser for canonical deliverable responses.

    Stateless between calls: configuration is fixed at construction and
    every recover() call builds its own RecoveryState, so one engine can
    serve any number of concurrent responses.

    Usage:
        engine = RecoveryEngine(RecoveryConfig(max_attempts=2))
        response = await engine.recover(raw_text, correction=callback)
        response.metadata.diagnostics.stage_reached
    """

    def __init__(
        self,
        config: Optional[RecoveryConfig] = None,
        repair_policy: Optional[RepairPolicy] = None,
    ):
        self.config = config or RecoveryConfig()
        self.repair_policy = repair_policy or RepairPolicy()

    def new_state(self, text: str) -> RecoveryState:
        return RecoveryState(raw_text=text or "", max_attempts=self.config.max_attempts)

    async def recover(
        self,
        text: str,
        correction: Optional[CorrectionCallback] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ) -> StructuredResponse:
        """
        Run S0 → S3 and return the first structured result.

        Args:
            text: Raw model completion
            correction: Optional async (content, attempt_number) -> str used in S2
            cancel_event: Set it to abandon S2 and go straight to S3
            deadline: Absolute time on the running loop's clock after which
                S2 is abandoned

        Returns:
            StructuredResponse with metadata.diagnostics filled in
        """
        state = self.new_state(text)

        response = self._try_local_stages(state)
        if response is not None:
            return response

        if correction is not None and state.max_attempts > 0:
            try:
                response = await self._correct(state, correction, cancel_event, deadline)
                return self._finish(response, state)
            except StageFailed as e:
                logger.warning(f"Assisted correction gave up after {state.attempt_count} attempt(s): {e}")

        return self._heuristic(state)

    def recover_sync(self, text: str) -> StructuredResponse:
        """S0, S1 and S3 only - for callers without a correction callback."""
        state = self.new_state(text)
        response = self._try_local_stages(state)
        if response is not None:
            return response
        return self._heuristic(state)

    # S0 + S1 ─────────────────────────────────────────────────────────

    def _try_local_stages(self, state: RecoveryState) -> Optional[StructuredResponse]:
        try:
            return self._finish(decode_canonical(state.raw_text, RecoveryStage.STRICT), state)
        except StageFailed:
            pass

        state.advance(RecoveryStage.REPAIRED)
        repaired, applied = self.repair_policy.apply(state.raw_text)
        if not applied:
            ParseAttempt(RecoveryStage.REPAIRED, repaired, "no repair applicable").log()
            return None
        try:
            response = decode_canonical(repaired, RecoveryStage.REPAIRED)
        except StageFailed:
            return None

        state.auto_corrected = True
        state.repairs_applied = applied
        logger.info(f"Recovered response with repairs: {', '.join(applied)}")
        return self._finish(response, state)

    # S2 ──────────────────────────────────────────────────────────────

    async def _correct(
        self,
        state: RecoveryState,
        correction: CorrectionCallback,
        cancel_event: Optional[asyncio.Event],
        deadline: Optional[float],
    ) -> StructuredResponse:
        state.advance(RecoveryStage.CORRECTED)
        content = build_correction_prompt(state.raw_text)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(state.max_attempts),
            retry=retry_if_exception_type(CorrectionFailed),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        response = None
        async for attempt in retrying:
            with attempt:
                response = await self._correction_attempt(state, correction, content, cancel_event, deadline)

        state.auto_corrected = True
        logger.info(f"Recovered response after {state.attempt_count} correction attempt(s)")
        return response

    async def _correction_attempt(
        self,
        state: RecoveryState,
        correction: CorrectionCallback,
        content: str,
        cancel_event: Optional[asyncio.Event],
        deadline: Optional[float],
    ) -> StructuredResponse:
        if cancel_event is not None and cancel_event.is_set():
            raise CorrectionAborted("Correction cancelled by caller")

        timeout = self.config.attempt_timeout_seconds
        if deadline is not None:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                raise CorrectionAborted("Caller deadline passed")
            timeout = min(timeout, remaining)

        attempt_number = state.next_attempt()
        corrected = await self._call_bounded(correction, content, attempt_number, timeout, cancel_event)
        try:
            return decode_canonical(corrected, RecoveryStage.CORRECTED)
        except StageFailed as e:
            raise CorrectionFailed(f"attempt {attempt_number} output did not decode") from e

    @staticmethod
    async def _call_bounded(
        correction: CorrectionCallback,
        content: str,
        attempt_number: int,
        timeout: float,
        cancel_event: Optional[asyncio.Event],
    ) -> str:
        """
        Run the callback, giving up on timeout or when cancel_event is set.

        Plain functions run in a worker thread so they are bounded the same
        way; the thread itself cannot be interrupted and is left to finish.
        """
        loop = asyncio.get_running_loop()
        expires = loop.time() + timeout

        if _is_async_callable(correction):
            try:
                outcome = correction(content, attempt_number)
            except Exception as e:
                raise CorrectionFailed(f"attempt {attempt_number} callback failed: {e}") from e
        else:
            outcome = asyncio.to_thread(correction, content, attempt_number)

        result = await RecoveryEngine._await_bounded(outcome, attempt_number, timeout, cancel_event)
        if inspect.isawaitable(result):
            # Sync wrapper around an async callable
            remaining = max(expires - loop.time(), 0.0)
            result = await RecoveryEngine._await_bounded(result, attempt_number, remaining, cancel_event)
        return RecoveryEngine._check_output(result, attempt_number)

    @staticmethod
    async def _await_bounded(
        outcome: Any,
        attempt_number: int,
        timeout: float,
        cancel_event: Optional[asyncio.Event],
    ) -> Any:
        if not inspect.isawaitable(outcome):
            return outcome

        task = asyncio.ensure_future(outcome)
        waiters = {task}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if task not in done:
            if cancel_waiter is not None and cancel_waiter in done:
                raise CorrectionAborted(f"Correction cancelled during attempt {attempt_number}")
            raise CorrectionFailed(f"attempt {attempt_number} timed out after {timeout:.1f}s")
        if task.cancelled():
            raise CorrectionFailed(f"attempt {attempt_number} was cancelled")

        exc = task.exception()
        if exc is not None:
            raise CorrectionFailed(f"attempt {attempt_number} callback failed: {exc}") from exc
        return task.result()

    @staticmethod
    def _check_output(result: Any, attempt_number: int) -> str:
        if not isinstance(result, str):
            raise CorrectionFailed(f"attempt {attempt_number} returned {type(result).__name__}, not str")
        return result

    # S3 ──────────────────────────────────────────────────────────────

    def _heuristic(self, state: RecoveryState) -> StructuredResponse:
        state.advance(RecoveryStage.HEURISTIC)
        text = state.raw_text
        response = StructuredResponse(
            deliverables={
                "analysis": excerpt(text, self.config.analysis_excerpt_chars),
                "recommendations": extract_recommendations(text, self.config.max_recommendations),
            },
            memory_operations=[],
            metadata=ResponseMetadata(
                confidence_level=ConfidenceLevel.LOW,
                task_completion_status=TaskCompletionStatus.PARTIAL,
            ),
        )
        logger.warning(
            f"Fell back to heuristic extraction after {state.attempt_count} correction attempt(s) "
            f"({len(text)} chars)"
        )
        return self._finish(response, state)

    @staticmethod
    def _finish(response: StructuredResponse, state: RecoveryState) -> StructuredResponse:
        response.metadata.diagnostics = state.diagnostics()
        return response


_default_engine = RecoveryEngine()


def parse_structured_response(text: str) -> StructuredResponse:
    """Recover a StructuredResponse without assisted correction."""
    return _default_engine.recover_sync(text)
