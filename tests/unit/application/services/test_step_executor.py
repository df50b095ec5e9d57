"""Tests for StepExecutor retry, timeout and cancellation handling."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest

from src.application.services.step_executor import StepExecutor
from src.domain.ports.tool_invoker_port import ToolInvokerPort
from src.domain.value_objects.cancellation import CancellationToken
from src.domain.value_objects.workflow_enums import StepErrorKind, StepStatus
from tests.conftest import FakeInvoker, make_step


@pytest.fixture
def executor(invoker: FakeInvoker) -> StepExecutor:
    return StepExecutor(invoker, backoff_s=0.0, backoff_max_s=0.0)


class HangingInvoker(ToolInvokerPort):
    def __init__(self) -> None:
        self.cancelled = 0

    async def invoke(
        self, action: dict[str, Any], timeout_s: float, token: CancellationToken | None = None
    ) -> str:
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return "never"


class TestStepExecutorSuccess:
    async def test_returns_output(self, executor: StepExecutor) -> None:
        outcome = await executor.run(make_step("a", result="hello"), timeout_s=1, retry_limit=3)

        assert outcome.status == StepStatus.DONE
        assert outcome.result == "hello"
        assert outcome.attempts == 1

    async def test_transient_errors_retried_until_success(
        self, executor: StepExecutor, invoker: FakeInvoker
    ) -> None:
        step = make_step("a", fail="transient", fail_times=2)

        outcome = await executor.run(step, timeout_s=1, retry_limit=3)

        assert outcome.succeeded
        assert outcome.attempts == 3
        assert invoker.attempts["a"] == 3


class TestStepExecutorFailure:
    async def test_transient_errors_exhaust_retry_limit(
        self, executor: StepExecutor, invoker: FakeInvoker
    ) -> None:
        step = make_step("a", fail="transient", fail_times=10)

        outcome = await executor.run(step, timeout_s=1, retry_limit=3)

        assert outcome.status == StepStatus.FAILED
        assert outcome.error_kind == StepErrorKind.TRANSIENT
        assert outcome.attempts == 3
        assert invoker.attempts["a"] == 3

    async def test_permanent_error_not_retried(
        self, executor: StepExecutor, invoker: FakeInvoker
    ) -> None:
        step = make_step("a", fail="permanent", fail_times=10)

        outcome = await executor.run(step, timeout_s=1, retry_limit=3)

        assert outcome.error_kind == StepErrorKind.PERMANENT
        assert outcome.attempts == 1
        assert "broke" in (outcome.error or "")

    async def test_timeout_retried_then_reported(self) -> None:
        invoker = HangingInvoker()
        executor = StepExecutor(invoker, backoff_s=0.0, backoff_max_s=0.0)

        outcome = await executor.run(make_step("a"), timeout_s=0.05, retry_limit=2)

        assert outcome.error_kind == StepErrorKind.TIMEOUT
        assert outcome.attempts == 2
        assert invoker.cancelled == 2

    async def test_unexpected_exception_is_permanent(self) -> None:
        invoker = AsyncMock(spec=ToolInvokerPort)
        invoker.invoke.side_effect = RuntimeError("bug")
        executor = StepExecutor(invoker, backoff_s=0.0, backoff_max_s=0.0)

        outcome = await executor.run(make_step("a"), timeout_s=1, retry_limit=3)

        assert outcome.error_kind == StepErrorKind.PERMANENT
        assert invoker.invoke.await_count == 1


class TestStepExecutorCancellation:
    async def test_cancel_aborts_in_flight_invocation(self) -> None:
        invoker = HangingInvoker()
        executor = StepExecutor(invoker, backoff_s=0.0, backoff_max_s=0.0)
        token = CancellationToken()

        task = asyncio.create_task(executor.run(make_step("a"), 10, 3, token))
        await asyncio.sleep(0.05)
        token.cancel("stopped by user")
        outcome = await asyncio.wait_for(task, timeout=2)

        assert outcome.error_kind == StepErrorKind.CANCELLED
        assert invoker.cancelled == 1

    async def test_already_cancelled_never_invokes(self, invoker: FakeInvoker) -> None:
        executor = StepExecutor(invoker, backoff_s=0.0, backoff_max_s=0.0)
        token = CancellationToken()
        token.cancel()

        outcome = await executor.run(make_step("a"), 1, 3, token)

        assert outcome.error_kind == StepErrorKind.CANCELLED
        assert invoker.calls == []

    async def test_cancel_interrupts_backoff(self, invoker: FakeInvoker) -> None:
        executor = StepExecutor(invoker, backoff_s=30.0, backoff_max_s=30.0)
        token = CancellationToken()
        step = make_step("a", fail="transient", fail_times=10)

        task = asyncio.create_task(executor.run(step, 1, 5, token))
        await asyncio.sleep(0.05)
        token.cancel()
        outcome = await asyncio.wait_for(task, timeout=2)

        assert outcome.error_kind == StepErrorKind.CANCELLED
        assert invoker.attempts["a"] == 1
