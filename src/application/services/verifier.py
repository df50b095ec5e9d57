import glob
import re
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.ports.command_runner_port import CommandRunnerPort
from src.domain.ports.judge_port import ValidationJudgePort
from src.domain.value_objects.verification_result import VerificationResult
from src.domain.value_objects.verification_strategy import (
    Combined,
    CommandSuccess,
    ExternalValidation,
    FileExists,
    OutputPattern,
    VerificationStrategy,
)
from src.domain.value_objects.workflow_enums import StepStatus, VerificationOutcome


@dataclass
class VerificationContext:
    working_dir: Path
    command_timeout_s: float = 300.0

    @classmethod
    def for_plan(cls, plan: WorkflowPlan) -> "VerificationContext":
        return cls(
            working_dir=plan.config.working_dir,
            command_timeout_s=plan.config.per_step_timeout_s,
        )


class Verifier:
    """Evaluates verification strategies against a plan's execution
    history.

    ``INCONCLUSIVE`` is only produced when the external judge itself
    errors. ``Combined`` is conjunctive: any failing or inconclusive
    sub-check prevents success.
    """

    def __init__(
        self,
        command_runner: CommandRunnerPort,
        judge: ValidationJudgePort | None = None,
    ) -> None:
        self.command_runner = command_runner
        self.judge = judge

    async def verify(
        self,
        strategy: VerificationStrategy,
        context: VerificationContext,
        plan: WorkflowPlan,
    ) -> VerificationResult:
        match strategy:
            case FileExists():
                return self._verify_files(strategy, context)
            case CommandSuccess():
                return await self._verify_command(strategy, context)
            case ExternalValidation():
                return await self._verify_external(strategy, plan)
            case OutputPattern():
                return self._verify_output_pattern(strategy, plan)
            case Combined():
                return await self._verify_combined(strategy, context, plan)
        raise TypeError(f"Unknown verification strategy: {strategy!r}")

    def _verify_files(
        self, strategy: FileExists, context: VerificationContext
    ) -> VerificationResult:
        missing: list[str] = []
        for pattern in strategy.path_patterns:
            full = pattern if Path(pattern).is_absolute() else str(context.working_dir / pattern)
            if not glob.glob(full, recursive=True):
                missing.append(pattern)

        total = len(strategy.path_patterns)
        found = total - len(missing)
        if missing:
            return VerificationResult.failure(
                f"Files verification: {found}/{total} patterns matched, missing: "
                f"{', '.join(missing)}",
                score=found / total,
            )
        return VerificationResult.success(f"Files verification: {found}/{total} patterns matched")

    async def _verify_command(
        self,
        strategy: CommandSuccess,
        context: VerificationContext,
    ) -> VerificationResult:
        try:
            result = await self.command_runner.run(
                strategy.command, context.working_dir, context.command_timeout_s
            )
        except OSError as e:
            return VerificationResult.failure(f"Command `{strategy.command}` could not start: {e}")
        if result.blocked:
            return VerificationResult.failure(result.stderr)
        if result.timed_out:
            return VerificationResult.failure(
                f"Command `{strategy.command}` timed out after {context.command_timeout_s}s"
            )
        if result.exit_code != strategy.expected_exit_code:
            tail = (result.stderr or result.stdout)[-500:]
            return VerificationResult.failure(
                f"Command `{strategy.command}` exited {result.exit_code}, "
                f"expected {strategy.expected_exit_code}: {tail}"
            )
        return VerificationResult.success(
            f"Command `{strategy.command}` exited {result.exit_code}"
        )

    async def _verify_external(
        self,
        strategy: ExternalValidation,
        plan: WorkflowPlan,
    ) -> VerificationResult:
        if self.judge is None:
            return VerificationResult.inconclusive("No validation judge configured")
        try:
            verdict = await self.judge.judge(strategy.criteria, plan)
        except Exception as e:
            logger.warning("Validation judge failed: {}", e)
            return VerificationResult.inconclusive(f"Judge error: {e}")

        if verdict.passed:
            return VerificationResult(
                outcome=VerificationOutcome.SUCCESS,
                reason=verdict.rationale,
                score=verdict.score if verdict.score is not None else 1.0,
            )
        return VerificationResult.failure(
            verdict.rationale, score=verdict.score if verdict.score is not None else 0.0
        )

    def _verify_output_pattern(
        self,
        strategy: OutputPattern,
        plan: WorkflowPlan,
    ) -> VerificationResult:
        regex = re.compile(strategy.regex)
        outputs = [s.result or "" for s in plan.steps if s.status == StepStatus.DONE]
        if not outputs:
            return VerificationResult.failure("No completed step output to match")

        matching = sum(1 for out in outputs if regex.search(out))
        score = matching / len(outputs)
        message = (
            f"Pattern matching: {matching}/{len(outputs)} step outputs match /{strategy.regex}/"
        )
        if matching == 0:
            return VerificationResult.failure(message, score=score)
        return VerificationResult(outcome=VerificationOutcome.SUCCESS, reason=message, score=score)

    async def _verify_combined(
        self,
        strategy: Combined,
        context: VerificationContext,
        plan: WorkflowPlan,
    ) -> VerificationResult:
        results = [await self.verify(sub, context, plan) for sub in strategy.strategies]
        outcomes = [r.outcome for r in results]
        passed = outcomes.count(VerificationOutcome.SUCCESS)

        if passed == len(results):
            outcome = VerificationOutcome.SUCCESS
        elif VerificationOutcome.FAILURE in outcomes:
            outcome = VerificationOutcome.FAILURE
        else:
            outcome = VerificationOutcome.INCONCLUSIVE

        return VerificationResult(
            outcome=outcome,
            reason=f"Combined verification: {passed}/{len(results)} checks passed - "
            + "; ".join(r.reason for r in results),
            score=passed / len(results),
            details=results,
        )
