import asyncio
import contextlib
import time
from typing import Any

from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from src.domain.entities.step import Step
from src.domain.ports.tool_invoker_port import InvokerError, ToolInvokerPort
from src.domain.value_objects.cancellation import CancellationToken
from src.domain.value_objects.step_outcome import StepOutcome
from src.domain.value_objects.workflow_enums import StepErrorKind, StepStatus


class StepTimeoutError(InvokerError):
    """Raised when a single invocation exceeds its time budget.

    Retried like any transient failure.
    """

    transient = True


class StepCancelledError(Exception):
    """Raised when the plan's cancellation token fires during a step."""


def _is_retryable_error(e: BaseException) -> bool:
    return isinstance(e, InvokerError) and e.transient


def _log_retry(retry_state: Any) -> None:
    exc = retry_state.outcome.exception()
    logger.warning(f"[STEP] Retry {retry_state.attempt_number}: {str(exc)[:100]}")


class StepExecutor:
    """Runs one step through the tool invoker with timeout and retry.

    Transient errors and timeouts are retried with exponential backoff up
    to ``retry_limit`` attempts in total; they never escape this class.
    """

    def __init__(
        self,
        invoker: ToolInvokerPort,
        backoff_s: float = 1.0,
        backoff_max_s: float = 30.0,
    ) -> None:
        self.invoker = invoker
        self.backoff_s = backoff_s
        self.backoff_max_s = backoff_max_s

    async def run(
        self,
        step: Step,
        timeout_s: float,
        retry_limit: int,
        token: CancellationToken | None = None,
    ) -> StepOutcome:
        start = time.monotonic()
        attempts = 0
        output = ""

        async def sleep(seconds: float) -> None:
            await self._interruptible_sleep(seconds, token)

        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable_error),
            stop=stop_after_attempt(max(1, retry_limit)),
            wait=wait_exponential(multiplier=self.backoff_s, max=self.backoff_max_s),
            sleep=sleep,
            before_sleep=_log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    if token is not None and token.is_cancelled:
                        raise StepCancelledError(token.reason or "cancelled")
                    attempts += 1
                    logger.debug("Step {} attempt {}", step.id, attempts)
                    output = await self._invoke_once(step, timeout_s, token)
        except StepCancelledError as e:
            logger.info("Step {} cancelled: {}", step.id, e)
            return self._failed(step, f"Cancelled: {e}", StepErrorKind.CANCELLED, attempts, start)
        except StepTimeoutError as e:
            return self._failed(step, str(e), StepErrorKind.TIMEOUT, attempts, start)
        except InvokerError as e:
            kind = StepErrorKind.TRANSIENT if e.transient else StepErrorKind.PERMANENT
            return self._failed(step, str(e), kind, attempts, start)
        except Exception as e:
            logger.error("Step {} invoker raised unexpected error: {}", step.id, e)
            return self._failed(step, str(e), StepErrorKind.PERMANENT, attempts, start)

        logger.info("Step {} done after {} attempt(s)", step.id, attempts)
        return StepOutcome(
            step_id=step.id,
            status=StepStatus.DONE,
            result=output,
            attempts=attempts,
            duration_ms=self._elapsed_ms(start),
        )

    async def _invoke_once(
        self,
        step: Step,
        timeout_s: float,
        token: CancellationToken | None,
    ) -> str:
        """Single attempt, raced against the timeout and the stop signal."""
        invoke_task = asyncio.create_task(self.invoker.invoke(step.action, timeout_s, token))
        waiters: set[asyncio.Future[Any]] = {invoke_task}
        stop_task: asyncio.Task[None] | None = None
        if token is not None:
            stop_task = asyncio.create_task(token.wait())
            waiters.add(stop_task)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout_s, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if stop_task is not None:
                stop_task.cancel()
            if not invoke_task.done():
                invoke_task.cancel()
                # Let the invoker clean up (kill subprocesses etc.)
                await asyncio.gather(invoke_task, return_exceptions=True)

        if invoke_task in done:
            return invoke_task.result()
        if token is not None and token.is_cancelled:
            raise StepCancelledError(token.reason or "cancelled")
        raise StepTimeoutError(f"Step {step.id} timed out after {timeout_s}s")

    @staticmethod
    async def _interruptible_sleep(seconds: float, token: CancellationToken | None) -> None:
        if token is None:
            await asyncio.sleep(seconds)
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(token.wait(), timeout=seconds)

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)

    def _failed(
        self,
        step: Step,
        error: str,
        kind: StepErrorKind,
        attempts: int,
        start: float,
    ) -> StepOutcome:
        logger.warning("Step {} failed ({}): {}", step.id, kind.value, error[:200])
        return StepOutcome(
            step_id=step.id,
            status=StepStatus.FAILED,
            error=error,
            error_kind=kind,
            attempts=attempts,
            duration_ms=self._elapsed_ms(start),
        )
