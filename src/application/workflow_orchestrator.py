import asyncio
from collections.abc import Callable
from uuid import UUID

from loguru import logger

from src.application.dto.iteration_report import IterationReport
from src.application.plan_registry import PlanRegistry
from src.application.services.replanner import RePlanner
from src.application.services.step_executor import StepExecutor
from src.application.services.verifier import VerificationContext, Verifier
from src.domain.entities.plan_change import PlanChange
from src.domain.entities.step import Step
from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.errors import (
    DependencyCycleError,
    InvalidTransitionError,
    StateCorruptionError,
    UnknownDependencyError,
)
from src.domain.ports.command_runner_port import CommandRunnerPort
from src.domain.ports.judge_port import ValidationJudgePort
from src.domain.ports.plan_store_port import PlanStorePort
from src.domain.ports.planner_port import FailureContext, PlannerError, PlannerPort
from src.domain.ports.tool_invoker_port import ToolInvokerPort
from src.domain.services.dependency_graph import validate_dependencies
from src.domain.services.scheduler import Scheduler
from src.domain.value_objects.cancellation import CancellationToken
from src.domain.value_objects.execution_config import ExecutionConfig
from src.domain.value_objects.step_outcome import StepOutcome
from src.domain.value_objects.verification_result import VerificationResult
from src.domain.value_objects.workflow_enums import (
    FailureReason,
    PlanStatus,
    ReplanTrigger,
    StepErrorKind,
    StepStatus,
    VerificationOutcome,
)

# Called with the report of every cycle run by WorkflowOrchestrator.run()
IterationCallback = Callable[[IterationReport], None]


class PlanNotFoundError(Exception):
    def __init__(self, plan_id: UUID) -> None:
        self.plan_id = plan_id
        super().__init__(f"Plan not found: {plan_id}")


class StepNotFoundError(Exception):
    def __init__(self, plan_id: UUID, step_id: str) -> None:
        self.plan_id = plan_id
        self.step_id = step_id
        super().__init__(f"Step {step_id} not found in plan {plan_id}")


class StepNotReadyError(Exception):
    """Raised when a step is executed manually before it may run."""


class MaxIterationsExceededError(Exception):
    """Raised when a cycle would push the plan past its iteration budget.

    The plan has already been marked failed when this is raised.
    """

    def __init__(self, plan_id: UUID, max_iterations: int) -> None:
        self.plan_id = plan_id
        self.max_iterations = max_iterations
        super().__init__(f"Plan {plan_id} exceeded max iterations ({max_iterations})")


class WorkflowOrchestrator:
    """Owns plan lifecycle and drives the execute/verify/re-plan loop.

    Cycle (one ``continue_execution`` call):
    leftover failures -> re-plan | ready steps -> dispatch -> [re-plan | verify]
    | blocked steps -> re-plan | nothing pending -> verify -> complete or re-plan

    Each cycle that executes steps or re-plans consumes one iteration.
    """

    def __init__(
        self,
        planner: PlannerPort,
        invoker: ToolInvokerPort,
        store: PlanStorePort,
        command_runner: CommandRunnerPort,
        judge: ValidationJudgePort | None = None,
        registry: PlanRegistry | None = None,
    ) -> None:
        self.planner = planner
        self.invoker = invoker
        self.store = store
        self.registry = registry or PlanRegistry()

        self.scheduler = Scheduler()
        self.verifier = Verifier(command_runner, judge)
        self.replanner = RePlanner(planner, self.scheduler)

    # ------------------------------------------------------------------
    # Lifecycle commands
    # ------------------------------------------------------------------

    async def start(
        self,
        goal: str,
        config: ExecutionConfig,
        parent_plan_id: UUID | None = None,
    ) -> UUID:
        """Plan a goal and persist the new plan as active.

        Raises:
            PlannerError: If the planner produces no usable steps.
            DependencyCycleError: If the initial steps form a cycle.
        """
        logger.info("Starting workflow: {}", goal)
        steps = await self.planner.generate(goal, config)
        if not steps:
            raise PlannerError(f"Planner produced no steps for goal: {goal}")
        self._check_initial_steps(steps)

        plan = WorkflowPlan(goal=goal, config=config, parent_plan_id=parent_plan_id)
        plan.add_steps(steps)
        self.registry.put(plan)
        await self._persist(plan)

        logger.info("Plan {} created with {} steps", plan.id, len(plan.steps))
        return plan.id

    async def continue_execution(self, plan_id: UUID) -> IterationReport:
        """Run one cycle. No-op on plans that are not active.

        Raises:
            MaxIterationsExceededError: If the cycle would exceed the budget.
            PlannerError: If re-planning fails; cycle results are kept and
                the re-plan is retried on the next call.
        """
        async with self.registry.lock(plan_id):
            plan = await self._get_plan(plan_id)
            await self._adopt_external_control(plan)
            if plan.status != PlanStatus.ACTIVE:
                logger.debug("Plan {} is {}, nothing to continue", plan_id, plan.status.value)
                return IterationReport.noop(plan, f"Plan is {plan.status.value}")

            running = plan.steps_with_status(StepStatus.RUNNING)
            if running:
                raise StateCorruptionError(
                    f"Plan {plan_id} has running steps outside a cycle: "
                    f"{', '.join(s.id for s in running)}"
                )

            leftovers = plan.unhandled_failures()
            if leftovers:
                context = FailureContext(
                    trigger=ReplanTrigger.STEP_FAILURE,
                    iteration=plan.current_iteration + 1,
                    failed_steps=[self._outcome_from_step(s) for s in leftovers],
                    message=f"{len(leftovers)} step(s) failed earlier",
                )
                return await self._replan_cycle(plan, context)

            ready = self.scheduler.ready(plan.steps)
            if ready:
                return await self._dispatch_cycle(plan, ready)

            blocked = self.scheduler.blocked(plan.steps)
            if blocked:
                context = FailureContext(
                    trigger=ReplanTrigger.BLOCKED_STEPS,
                    iteration=plan.current_iteration + 1,
                    message=f"Steps can never run: {', '.join(s.id for s in blocked)}",
                )
                return await self._replan_cycle(plan, context)

            return await self._verify_cycle(plan)

    async def pause(self, plan_id: UUID) -> WorkflowPlan:
        """Stop dispatching new steps; running steps finish normally.

        A cycle in flight keeps its results but does not complete or fail
        the plan until it is resumed.
        """
        plan = await self._get_plan(plan_id)
        plan.transition_to(PlanStatus.PAUSED, "Paused by user")
        await self._persist_control(plan)
        logger.info("Plan {} paused", plan_id)
        return plan.snapshot()

    async def resume(self, plan_id: UUID) -> WorkflowPlan:
        plan = await self._get_plan(plan_id)
        plan.transition_to(PlanStatus.ACTIVE, "Resumed by user")
        await self._persist_control(plan)
        logger.info("Plan {} resumed", plan_id)
        return plan.snapshot()

    async def stop(self, plan_id: UUID) -> WorkflowPlan:
        """Stop a plan: cancel running steps and skip waiting ones."""
        plan = await self._get_plan(plan_id)
        if plan.status not in (PlanStatus.ACTIVE, PlanStatus.PAUSED):
            raise InvalidTransitionError("plan", plan.status.value, PlanStatus.STOPPED.value)

        self.registry.token(plan_id).cancel("stopped by user")
        async with self.registry.lock(plan_id):
            if plan.status not in (PlanStatus.ACTIVE, PlanStatus.PAUSED):
                # A finishing cycle settled the plan first
                raise InvalidTransitionError("plan", plan.status.value, PlanStatus.STOPPED.value)

            for step in plan.steps_with_status(StepStatus.RUNNING):
                step.apply_outcome(
                    StepOutcome(
                        step_id=step.id,
                        status=StepStatus.FAILED,
                        error="Cancelled: stopped by user",
                        error_kind=StepErrorKind.CANCELLED,
                    )
                )
            skipped = plan.steps_with_status(StepStatus.WAITING)
            for step in skipped:
                step.mark_skipped()

            plan.transition_to(PlanStatus.STOPPED, "Stopped by user")
            await self._persist(plan)

        logger.info("Plan {} stopped, {} waiting step(s) skipped", plan_id, len(skipped))
        return plan.snapshot()

    async def status(self, plan_id: UUID) -> WorkflowPlan:
        """Read-only snapshot of a plan."""
        plan = await self._get_plan(plan_id)
        return plan.snapshot()

    async def list_plans(self) -> list[UUID]:
        stored = await self.store.list_plans()
        return stored + [pid for pid in self.registry.plan_ids() if pid not in stored]

    async def execute_step(self, plan_id: UUID, step_id: str) -> StepOutcome:
        """Run one waiting step by hand, outside the scheduler.

        Dependencies are still enforced. A failure is left for the next
        ``continue_execution`` to re-plan.
        """
        async with self.registry.lock(plan_id):
            plan = await self._get_plan(plan_id)
            if plan.status not in (PlanStatus.ACTIVE, PlanStatus.PAUSED):
                raise InvalidTransitionError(f"step {step_id}", plan.status.value, "execute")

            step = plan.get_step(step_id)
            if step is None:
                raise StepNotFoundError(plan_id, step_id)
            if step.status != StepStatus.WAITING:
                raise StepNotReadyError(
                    f"Step {step_id} is {step.status.value}; only waiting steps can run"
                )
            unmet = [
                dep
                for dep in step.depends_on
                if (dep_step := plan.get_step(dep)) is None or dep_step.status != StepStatus.DONE
            ]
            if unmet:
                raise StepNotReadyError(
                    f"Step {step_id} has unfinished dependencies: {', '.join(unmet)}"
                )

            logger.info("Manually executing step {} of plan {}", step_id, plan_id)
            step.mark_running()
            outcomes = await self._run_steps(plan, [step], self.registry.token(plan_id))
            step.apply_outcome(outcomes[0])
            plan.touch()
            await self._persist(plan)
            return outcomes[0]

    async def verify(self, plan_id: UUID) -> VerificationResult:
        """Run the plan's verification strategy without changing the plan."""
        plan = await self._get_plan(plan_id)
        return await self.verifier.verify(
            plan.verification_strategy, VerificationContext.for_plan(plan), plan.snapshot()
        )

    async def run(
        self,
        plan_id: UUID,
        on_iteration: IterationCallback | None = None,
    ) -> WorkflowPlan:
        """Continue until the plan is no longer active."""
        while True:
            try:
                report = await self.continue_execution(plan_id)
            except MaxIterationsExceededError as e:
                logger.warning("{}", e)
                break
            if on_iteration:
                on_iteration(report)
            if report.plan_status != PlanStatus.ACTIVE or not report.executed:
                break
        return await self.status(plan_id)

    # ------------------------------------------------------------------
    # Cycle internals
    # ------------------------------------------------------------------

    async def _dispatch_cycle(self, plan: WorkflowPlan, ready: list[Step]) -> IterationReport:
        await self._advance_iteration(plan)
        token = self.registry.token(plan.id)

        logger.info(
            "Plan {} iteration {}/{}: dispatching {} step(s)",
            plan.id,
            plan.current_iteration,
            plan.max_iterations,
            len(ready),
        )
        for step in ready:
            step.mark_running()
        plan.touch()

        outcomes = await self._run_steps(plan, ready, token)
        await self._adopt_external_control(plan)
        for outcome in outcomes:
            step = plan.get_step(outcome.step_id)
            if step is None:
                raise StateCorruptionError(f"Dispatched step {outcome.step_id} vanished")
            step.apply_outcome(outcome)
        plan.touch()

        verification: VerificationResult | None = None
        change: PlanChange | None = None
        failed = [o for o in outcomes if not o.succeeded]

        if token.is_cancelled or plan.status != PlanStatus.ACTIVE:
            message = f"Cycle ended while plan is {plan.status.value}"
        elif failed:
            change = await self._replan(
                plan,
                FailureContext(
                    trigger=ReplanTrigger.STEP_FAILURE,
                    iteration=plan.current_iteration,
                    failed_steps=failed,
                    message=f"{len(failed)} step(s) failed",
                ),
            )
            message = f"{len(failed)} step(s) failed, " + (
                "re-planned" if change is not None else "re-plan deferred while paused"
            )
        elif not plan.has_pending_steps():
            verification, change = await self._verify_and_settle(plan)
            message = verification.reason
            if plan.status == PlanStatus.PAUSED:
                message = self._deferred_message(plan, verification)
        else:
            message = f"{len(outcomes)} step(s) done"

        await self._persist(plan)
        return IterationReport(
            plan_id=plan.id,
            iteration=plan.current_iteration,
            plan_status=plan.status,
            steps_run=outcomes,
            verification=verification,
            plan_change=change,
            message=message,
            snapshot=plan.snapshot(),
        )

    async def _verify_cycle(self, plan: WorkflowPlan) -> IterationReport:
        result = await self._run_verification(plan)
        change: PlanChange | None = None
        message = result.reason
        if plan.status != PlanStatus.ACTIVE:
            message = self._deferred_message(plan, result)
        elif result.succeeded:
            plan.transition_to(PlanStatus.COMPLETED, result.reason)
            logger.info("Plan {} completed: {}", plan.id, result.reason)
        else:
            await self._advance_iteration(plan)
            change = await self._replan(plan, self._verification_context(plan, result))

        await self._persist(plan)
        return IterationReport(
            plan_id=plan.id,
            iteration=plan.current_iteration,
            plan_status=plan.status,
            verification=result,
            plan_change=change,
            message=message,
            snapshot=plan.snapshot(),
        )

    async def _replan_cycle(self, plan: WorkflowPlan, context: FailureContext) -> IterationReport:
        await self._advance_iteration(plan)
        change = await self._replan(plan, context)
        await self._persist(plan)
        return IterationReport(
            plan_id=plan.id,
            iteration=plan.current_iteration,
            plan_status=plan.status,
            plan_change=change,
            message=context.message,
            snapshot=plan.snapshot(),
        )

    async def _verify_and_settle(
        self, plan: WorkflowPlan
    ) -> tuple[VerificationResult, PlanChange | None]:
        result = await self._run_verification(plan)
        if plan.status != PlanStatus.ACTIVE:
            return result, None
        if result.succeeded:
            plan.transition_to(PlanStatus.COMPLETED, result.reason)
            logger.info("Plan {} completed: {}", plan.id, result.reason)
            return result, None
        change = await self._replan(plan, self._verification_context(plan, result))
        return result, change

    @staticmethod
    def _deferred_message(plan: WorkflowPlan, result: VerificationResult) -> str:
        logger.info(
            "Plan {} became {} during verification; not settling", plan.id, plan.status.value
        )
        return f"Verification {result.outcome.value}, plan is {plan.status.value}"

    async def _run_verification(self, plan: WorkflowPlan) -> VerificationResult:
        result = await self.verifier.verify(
            plan.verification_strategy, VerificationContext.for_plan(plan), plan
        )
        plan.last_verification = result
        plan.touch()
        if not result.succeeded:
            logger.warning(
                "Plan {} verification {}: {}", plan.id, result.outcome.value, result.reason
            )
        return result

    def _verification_context(
        self, plan: WorkflowPlan, result: VerificationResult
    ) -> FailureContext:
        trigger = (
            ReplanTrigger.VERIFICATION_INCONCLUSIVE
            if result.outcome == VerificationOutcome.INCONCLUSIVE
            else ReplanTrigger.VERIFICATION_FAILURE
        )
        return FailureContext(
            trigger=trigger,
            iteration=plan.current_iteration,
            verification=result,
            message=result.reason,
        )

    async def _replan(self, plan: WorkflowPlan, context: FailureContext) -> PlanChange | None:
        try:
            return await self.replanner.replan(plan, context)
        except (PlannerError, DependencyCycleError):
            # Keep what the cycle achieved; the failure stays unhandled
            await self._persist(plan)
            raise

    async def _advance_iteration(self, plan: WorkflowPlan) -> None:
        if plan.current_iteration + 1 > plan.max_iterations:
            plan.fail(
                FailureReason.MAX_ITERATIONS_EXCEEDED,
                f"Reached max iterations ({plan.max_iterations}) without completing the goal",
            )
            await self._persist(plan)
            logger.error("Plan {} failed: max iterations exceeded", plan.id)
            raise MaxIterationsExceededError(plan.id, plan.max_iterations)
        plan.current_iteration += 1
        plan.touch()

    async def _run_steps(
        self,
        plan: WorkflowPlan,
        steps: list[Step],
        token: CancellationToken,
    ) -> list[StepOutcome]:
        """Run steps concurrently, bounded by the configured worker pool."""
        config = plan.config
        executor = StepExecutor(self.invoker, config.retry_backoff_s, config.retry_backoff_max_s)
        semaphore = asyncio.Semaphore(config.worker_pool_size) if config.worker_pool_size else None

        async def run_one(step: Step) -> StepOutcome:
            timeout_s = step.timeout_s or config.per_step_timeout_s
            if semaphore is None:
                return await executor.run(step, timeout_s, config.per_step_retry_limit, token)
            async with semaphore:
                return await executor.run(step, timeout_s, config.per_step_retry_limit, token)

        return list(await asyncio.gather(*(run_one(s) for s in steps)))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_plan(self, plan_id: UUID) -> WorkflowPlan:
        plan = self.registry.get(plan_id)
        if plan is not None:
            return plan
        plan = await self.store.load(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        self.registry.put(plan)
        return plan

    async def _adopt_external_control(self, plan: WorkflowPlan) -> None:
        """Pick up pause/resume/stop written to the store by another process."""
        stored = await self.store.load(plan.id)
        if (
            stored is None
            or stored.updated_at <= plan.updated_at
            or stored.status == plan.status
            or stored.status not in (PlanStatus.ACTIVE, PlanStatus.PAUSED, PlanStatus.STOPPED)
            or plan.is_terminal
        ):
            return

        logger.info(
            "Plan {} was {} by another process: {}",
            plan.id,
            stored.status.value,
            stored.status_reason,
        )
        plan.status = stored.status
        plan.status_reason = stored.status_reason
        if stored.status == PlanStatus.STOPPED:
            self.registry.token(plan.id).cancel("stopped by another process")
            for step in plan.steps_with_status(StepStatus.WAITING):
                step.mark_skipped()
        plan.touch()

    async def _persist(self, plan: WorkflowPlan) -> None:
        await self.store.save(plan.snapshot())

    async def _persist_control(self, plan: WorkflowPlan) -> None:
        """Persist a status flip unless a cycle holds the plan.

        Mid-cycle snapshots would store running steps; the cycle writes the
        new status together with its results instead.
        """
        if self.registry.lock(plan.id).locked():
            logger.debug("Plan {} is mid-cycle; status saved when the cycle ends", plan.id)
            return
        await self._persist(plan)

    @staticmethod
    def _check_initial_steps(steps: list[Step]) -> None:
        ids = [s.id for s in steps]
        if len(set(ids)) != len(ids):
            raise PlannerError("Planner produced duplicate step ids")
        not_waiting = [s.id for s in steps if s.status != StepStatus.WAITING]
        if not_waiting:
            raise PlannerError(f"Planner produced steps that are not waiting: {not_waiting}")
        try:
            validate_dependencies(steps)
        except UnknownDependencyError as e:
            raise PlannerError(str(e)) from e

    @staticmethod
    def _outcome_from_step(step: Step) -> StepOutcome:
        return StepOutcome(
            step_id=step.id,
            status=step.status,
            result=step.result,
            error=step.error,
            error_kind=step.error_kind,
            attempts=step.attempt_count,
        )
