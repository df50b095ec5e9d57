"""Tests for Verifier strategies."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from src.application.services.verifier import VerificationContext, Verifier
from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.ports.judge_port import JudgeVerdict, ValidationJudgePort
from src.domain.value_objects.step_outcome import StepOutcome
from src.domain.value_objects.verification_strategy import (
    Combined,
    CommandSuccess,
    ExternalValidation,
    FileExists,
    OutputPattern,
)
from src.domain.value_objects.workflow_enums import StepStatus, VerificationOutcome
from tests.conftest import FakeCommandRunner, make_config, make_step


def _plan_with_outputs(*outputs: str) -> WorkflowPlan:
    plan = WorkflowPlan(goal="g", config=make_config())
    for i, output in enumerate(outputs):
        step = make_step(f"s{i}")
        plan.add_steps([step])
        step.mark_running()
        step.apply_outcome(StepOutcome(step_id=step.id, status=StepStatus.DONE, result=output))
    return plan


@pytest.fixture
def context(tmp_path: Path) -> VerificationContext:
    return VerificationContext(working_dir=tmp_path, command_timeout_s=5)


@pytest.fixture
def verifier(command_runner: FakeCommandRunner) -> Verifier:
    return Verifier(command_runner)


class TestFileExists:
    async def test_all_patterns_match(
        self, verifier: Verifier, context: VerificationContext, tmp_path: Path
    ) -> None:
        (tmp_path / "out").mkdir()
        (tmp_path / "out" / "a.txt").write_text("x")
        (tmp_path / "README.md").write_text("x")

        result = await verifier.verify(
            FileExists(path_patterns=["out/*.txt", "README.md"]), context, _plan_with_outputs()
        )

        assert result.succeeded
        assert result.score == 1.0

    async def test_missing_pattern_fails_with_partial_score(
        self, verifier: Verifier, context: VerificationContext, tmp_path: Path
    ) -> None:
        (tmp_path / "a.txt").write_text("x")

        result = await verifier.verify(
            FileExists(path_patterns=["a.txt", "b.txt"]), context, _plan_with_outputs()
        )

        assert result.outcome == VerificationOutcome.FAILURE
        assert result.score == 0.5
        assert "b.txt" in result.reason


class TestCommandSuccess:
    async def test_expected_exit_code(self, context: VerificationContext) -> None:
        runner = FakeCommandRunner({"make test": 0, "make lint": 2})
        verifier = Verifier(runner)
        plan = _plan_with_outputs()

        assert (await verifier.verify(CommandSuccess(command="make test"), context, plan)).succeeded
        assert not (
            await verifier.verify(CommandSuccess(command="make lint"), context, plan)
        ).succeeded
        assert (
            await verifier.verify(
                CommandSuccess(command="make lint", expected_exit_code=2), context, plan
            )
        ).succeeded
        assert runner.commands == ["make test", "make lint", "make lint"]


class TestOutputPattern:
    async def test_any_done_output_matching_succeeds(
        self, verifier: Verifier, context: VerificationContext
    ) -> None:
        plan = _plan_with_outputs("building", "12 tests passed")

        result = await verifier.verify(OutputPattern(regex=r"\d+ tests passed"), context, plan)

        assert result.succeeded
        assert result.score == 0.5

    async def test_no_match_fails(self, verifier: Verifier, context: VerificationContext) -> None:
        plan = _plan_with_outputs("building")
        result = await verifier.verify(OutputPattern(regex="passed"), context, plan)
        assert result.outcome == VerificationOutcome.FAILURE

    async def test_no_output_fails(self, verifier: Verifier, context: VerificationContext) -> None:
        result = await verifier.verify(OutputPattern(regex=".*"), context, _plan_with_outputs())
        assert result.outcome == VerificationOutcome.FAILURE


class TestExternalValidation:
    async def test_judge_verdict_used(
        self, command_runner: FakeCommandRunner, context: VerificationContext
    ) -> None:
        judge = AsyncMock(spec=ValidationJudgePort)
        judge.judge.return_value = JudgeVerdict(passed=True, rationale="looks good", score=0.8)
        verifier = Verifier(command_runner, judge)

        result = await verifier.verify(
            ExternalValidation(criteria="docs exist"), context, _plan_with_outputs()
        )

        assert result.succeeded
        assert result.score == 0.8
        assert result.reason == "looks good"

    async def test_judge_error_is_inconclusive(
        self, command_runner: FakeCommandRunner, context: VerificationContext
    ) -> None:
        judge = AsyncMock(spec=ValidationJudgePort)
        judge.judge.side_effect = RuntimeError("model down")
        verifier = Verifier(command_runner, judge)

        result = await verifier.verify(
            ExternalValidation(criteria="c"), context, _plan_with_outputs()
        )

        assert result.outcome == VerificationOutcome.INCONCLUSIVE

    async def test_no_judge_is_inconclusive(
        self, verifier: Verifier, context: VerificationContext
    ) -> None:
        result = await verifier.verify(
            ExternalValidation(criteria="c"), context, _plan_with_outputs()
        )
        assert result.outcome == VerificationOutcome.INCONCLUSIVE


class TestCombined:
    async def test_all_pass(self, verifier: Verifier, context: VerificationContext) -> None:
        strategy = Combined(
            strategies=[OutputPattern(regex="ok"), CommandSuccess(command="true")]
        )
        result = await verifier.verify(strategy, context, _plan_with_outputs("ok"))

        assert result.succeeded
        assert len(result.details) == 2

    async def test_one_failure_fails_whole(self, context: VerificationContext) -> None:
        verifier = Verifier(FakeCommandRunner({"false": 1}))
        strategy = Combined(
            strategies=[OutputPattern(regex="ok"), CommandSuccess(command="false")]
        )

        result = await verifier.verify(strategy, context, _plan_with_outputs("ok"))

        assert result.outcome == VerificationOutcome.FAILURE
        assert result.score == 0.5

    async def test_two_of_three_passing_fails(
        self, verifier: Verifier, context: VerificationContext, tmp_path: Path
    ) -> None:
        (tmp_path / "report.txt").write_text("x")
        strategy = Combined(
            strategies=[
                FileExists(path_patterns=["report.txt"]),
                CommandSuccess(command="true"),
                OutputPattern(regex="finished"),
            ]
        )

        result = await verifier.verify(strategy, context, _plan_with_outputs("still going"))

        assert result.outcome == VerificationOutcome.FAILURE
        assert result.score == pytest.approx(2 / 3)
        assert [d.outcome for d in result.details] == [
            VerificationOutcome.SUCCESS,
            VerificationOutcome.SUCCESS,
            VerificationOutcome.FAILURE,
        ]

    async def test_inconclusive_without_failure(
        self, verifier: Verifier, context: VerificationContext
    ) -> None:
        strategy = Combined(
            strategies=[OutputPattern(regex="ok"), ExternalValidation(criteria="c")]
        )
        result = await verifier.verify(strategy, context, _plan_with_outputs("ok"))
        assert result.outcome == VerificationOutcome.INCONCLUSIVE

    async def test_failure_wins_over_inconclusive(
        self, verifier: Verifier, context: VerificationContext
    ) -> None:
        strategy = Combined(
            strategies=[OutputPattern(regex="nope"), ExternalValidation(criteria="c")]
        )
        result = await verifier.verify(strategy, context, _plan_with_outputs("ok"))
        assert result.outcome == VerificationOutcome.FAILURE
