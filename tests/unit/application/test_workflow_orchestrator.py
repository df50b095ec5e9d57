"""Tests for WorkflowOrchestrator."""

import asyncio
import time
from pathlib import Path
from uuid import uuid4

import pytest

from src.application.dto.iteration_report import IterationReport
from src.application.workflow_orchestrator import (
    MaxIterationsExceededError,
    PlanNotFoundError,
    StepNotFoundError,
    StepNotReadyError,
    WorkflowOrchestrator,
)
from src.domain.entities.step import Step
from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.errors import DependencyCycleError, InvalidTransitionError, StateCorruptionError
from src.domain.ports.judge_port import JudgeVerdict, ValidationJudgePort
from src.domain.ports.planner_port import FailureContext, PlanDelta, PlannerError
from src.domain.value_objects.execution_config import ExecutionConfig
from src.domain.value_objects.verification_strategy import (
    ExternalValidation,
    FileExists,
    OutputPattern,
)
from src.domain.value_objects.workflow_enums import (
    FailureReason,
    PlanStatus,
    ReplanTrigger,
    StepErrorKind,
    StepStatus,
    VerificationOutcome,
)
from src.infrastructure.persistence.memory_plan_store import InMemoryPlanStore
from tests.conftest import FakeCommandRunner, FakeInvoker, FakePlanner, make_config, make_step


@pytest.fixture
def store() -> InMemoryPlanStore:
    return InMemoryPlanStore()


@pytest.fixture
def build(invoker: FakeInvoker, command_runner: FakeCommandRunner, store: InMemoryPlanStore):
    def _build(planner: FakePlanner) -> WorkflowOrchestrator:
        return WorkflowOrchestrator(planner, invoker, store, command_runner)

    return _build


async def _started(
    orchestrator: WorkflowOrchestrator, config: ExecutionConfig | None = None
) -> WorkflowPlan:
    plan_id = await orchestrator.start("goal", config or make_config())
    return await orchestrator.status(plan_id)


def _statuses(plan: WorkflowPlan) -> dict[str, StepStatus]:
    return {s.id: s.status for s in plan.steps}


class SlowJudge(ValidationJudgePort):
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.calls = 0

    async def judge(self, criteria: str, plan: WorkflowPlan) -> JudgeVerdict:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return JudgeVerdict(passed=True, rationale="looks done")


class SlowPlanner(FakePlanner):
    def __init__(self, steps: list[Step], delay: float) -> None:
        super().__init__(steps)
        self.delay = delay

    async def revise(self, plan: WorkflowPlan, failure_context: FailureContext) -> PlanDelta:
        await asyncio.sleep(self.delay)
        return await super().revise(plan, failure_context)


class TestStart:
    async def test_creates_active_persisted_plan(self, build, store: InMemoryPlanStore) -> None:
        orchestrator = build(FakePlanner([make_step("a"), make_step("b", "a")]))

        plan = await _started(orchestrator)

        assert plan.status == PlanStatus.ACTIVE
        assert plan.current_iteration == 0
        assert [(s.id, s.ordinal) for s in plan.steps] == [("a", 0), ("b", 1)]
        stored = await store.load(plan.id)
        assert stored is not None
        assert _statuses(stored) == {"a": StepStatus.WAITING, "b": StepStatus.WAITING}

    async def test_no_steps_rejected(self, build) -> None:
        with pytest.raises(PlannerError):
            await build(FakePlanner([])).start("goal", make_config())

    async def test_cycle_rejected(self, build, store: InMemoryPlanStore) -> None:
        planner = FakePlanner([make_step("a", "b"), make_step("b", "a")])

        with pytest.raises(DependencyCycleError):
            await build(planner).start("goal", make_config())

        assert await store.list_plans() == []

    async def test_unknown_dependency_rejected(self, build) -> None:
        with pytest.raises(PlannerError, match="ghost"):
            await build(FakePlanner([make_step("a", "ghost")])).start("goal", make_config())

    async def test_duplicate_ids_rejected(self, build) -> None:
        with pytest.raises(PlannerError, match="duplicate"):
            await build(FakePlanner([make_step("a"), make_step("a")])).start(
                "goal", make_config()
            )


class TestContinueExecution:
    async def test_independent_file_steps_complete_in_one_cycle(
        self, build, tmp_path: Path
    ) -> None:
        names = ["a.txt", "b.txt", "c.txt"]
        planner = FakePlanner(
            [make_step(f"s{i}", touch=str(tmp_path / name)) for i, name in enumerate(names)]
        )
        orchestrator = build(planner)
        config = make_config(FileExists(path_patterns=names), working_dir=tmp_path)
        plan = await _started(orchestrator, config)

        report = await orchestrator.continue_execution(plan.id)

        assert report.plan_status == PlanStatus.COMPLETED
        assert report.iteration == 1
        assert report.verification is not None and report.verification.succeeded
        assert len(report.steps_run) == 3

    async def test_exhausted_transient_retries_without_remediation_fail_plan(
        self, build, invoker: FakeInvoker
    ) -> None:
        planner = FakePlanner([make_step("a", fail_times=3)])
        orchestrator = build(planner)
        plan = await _started(orchestrator, make_config(per_step_retry_limit=3))

        report = await orchestrator.continue_execution(plan.id)

        assert invoker.attempts["a"] == 3
        assert report.steps_run[0].error_kind == StepErrorKind.TRANSIENT
        assert planner.contexts[0].trigger == ReplanTrigger.STEP_FAILURE
        final = await orchestrator.status(plan.id)
        assert final.status == PlanStatus.FAILED
        assert final.failure_reason == FailureReason.NO_REMEDIATION
        assert final.get_step("a").status == StepStatus.FAILED

    async def test_dependent_steps_exceed_single_iteration(
        self, build, store: InMemoryPlanStore
    ) -> None:
        orchestrator = build(FakePlanner([make_step("a"), make_step("b", "a")]))
        plan = await _started(orchestrator, make_config(max_iterations=1))

        first = await orchestrator.continue_execution(plan.id)
        assert first.plan_status == PlanStatus.ACTIVE

        with pytest.raises(MaxIterationsExceededError):
            await orchestrator.continue_execution(plan.id)

        stored = await store.load(plan.id)
        assert stored.status == PlanStatus.FAILED
        assert stored.failure_reason == FailureReason.MAX_ITERATIONS_EXCEEDED
        assert stored.current_iteration == 1

    async def test_failed_step_is_remediated(self, build) -> None:
        planner = FakePlanner(
            [make_step("a", fail="permanent", fail_times=1), make_step("b", "a")],
            revisions=[PlanDelta(new_steps=[make_step("a2")], rationale="try another way")],
        )
        orchestrator = build(planner)
        plan = await _started(orchestrator)

        replanned = await orchestrator.continue_execution(plan.id)
        assert replanned.plan_change is not None
        assert replanned.plan_change.added_step_ids == ["a2"]

        await orchestrator.continue_execution(plan.id)
        report = await orchestrator.continue_execution(plan.id)

        final = report.snapshot
        assert final.status == PlanStatus.COMPLETED
        assert final.current_iteration == 3
        assert final.get_step("a").superseded
        assert final.get_step("b").depends_on == ["a2"]

    async def test_replan_error_keeps_plan_active_and_retries(
        self, build, store: InMemoryPlanStore
    ) -> None:
        planner = FakePlanner(
            [make_step("a", fail="permanent", fail_times=1)],
            revisions=[
                PlannerError("no planner configured"),
                PlanDelta(new_steps=[make_step("a2")]),
            ],
        )
        orchestrator = build(planner)
        plan = await _started(orchestrator)

        with pytest.raises(PlannerError):
            await orchestrator.continue_execution(plan.id)

        stored = await store.load(plan.id)
        assert stored.status == PlanStatus.ACTIVE
        assert stored.get_step("a").status == StepStatus.FAILED
        assert stored.plan_changes == []

        retried = await orchestrator.continue_execution(plan.id)

        assert retried.plan_change is not None
        assert retried.plan_change.added_step_ids == ["a2"]
        assert retried.snapshot.get_step("a").superseded

    async def test_verification_failure_triggers_replan(self, build) -> None:
        planner = FakePlanner(
            [make_step("a", result="nope")],
            revisions=[PlanDelta(new_steps=[make_step("b", result="done")])],
        )
        orchestrator = build(planner)
        plan = await _started(orchestrator, make_config(OutputPattern(regex="done")))

        first = await orchestrator.continue_execution(plan.id)

        assert first.verification.outcome == VerificationOutcome.FAILURE
        assert planner.contexts[0].trigger == ReplanTrigger.VERIFICATION_FAILURE

        second = await orchestrator.continue_execution(plan.id)
        assert second.plan_status == PlanStatus.COMPLETED

    async def test_terminal_plan_is_noop(self, build, invoker: FakeInvoker) -> None:
        orchestrator = build(FakePlanner([make_step("a")]))
        plan = await _started(orchestrator)
        await orchestrator.continue_execution(plan.id)

        report = await orchestrator.continue_execution(plan.id)

        assert not report.executed
        assert report.plan_status == PlanStatus.COMPLETED
        assert report.iteration == 1
        assert len(invoker.calls) == 1

    async def test_ready_steps_run_in_parallel(self, build, invoker: FakeInvoker) -> None:
        orchestrator = build(FakePlanner([make_step(n, sleep=0.3) for n in ("a", "b", "c")]))
        plan = await _started(orchestrator)

        started = time.monotonic()
        await orchestrator.continue_execution(plan.id)
        elapsed = time.monotonic() - started

        assert elapsed < 0.8
        assert invoker.max_running == 3

    async def test_worker_pool_bounds_concurrency(self, build, invoker: FakeInvoker) -> None:
        orchestrator = build(FakePlanner([make_step(n, sleep=0.01) for n in ("a", "b", "c")]))
        plan = await _started(orchestrator, make_config(worker_pool_size=1))

        report = await orchestrator.continue_execution(plan.id)

        assert invoker.max_running == 1
        assert report.plan_status == PlanStatus.COMPLETED

    async def test_running_step_outside_cycle_is_corruption(
        self, build, store: InMemoryPlanStore
    ) -> None:
        plan = WorkflowPlan(goal="g", config=make_config())
        plan.add_steps([make_step("a")])
        plan.steps[0].mark_running()
        await store.save(plan)

        with pytest.raises(StateCorruptionError):
            await build(FakePlanner()).continue_execution(plan.id)

    async def test_unknown_plan(self, build) -> None:
        with pytest.raises(PlanNotFoundError):
            await build(FakePlanner()).continue_execution(uuid4())


class TestPauseResume:
    async def test_round_trip_preserves_state(self, build, invoker: FakeInvoker) -> None:
        orchestrator = build(FakePlanner([make_step("a"), make_step("b", "a")]))
        plan = await _started(orchestrator)
        await orchestrator.continue_execution(plan.id)
        before = await orchestrator.status(plan.id)

        paused = await orchestrator.pause(plan.id)
        skipped = await orchestrator.continue_execution(plan.id)
        resumed = await orchestrator.resume(plan.id)

        assert paused.status == PlanStatus.PAUSED
        assert not skipped.executed
        assert len(invoker.calls) == 1
        assert resumed.status == PlanStatus.ACTIVE
        assert _statuses(resumed) == _statuses(before)
        assert resumed.current_iteration == before.current_iteration

    async def test_pause_mid_cycle_lets_running_steps_finish(
        self, build, invoker: FakeInvoker, store: InMemoryPlanStore
    ) -> None:
        orchestrator = build(FakePlanner([make_step("a", sleep=0.3), make_step("b", "a")]))
        plan = await _started(orchestrator)

        cycle = asyncio.create_task(orchestrator.continue_execution(plan.id))
        await asyncio.sleep(0.05)
        paused = await orchestrator.pause(plan.id)
        mid_cycle = await store.load(plan.id)
        report = await cycle

        assert paused.status == PlanStatus.PAUSED
        assert mid_cycle.status == PlanStatus.ACTIVE
        assert StepStatus.RUNNING not in _statuses(mid_cycle).values()
        assert report.plan_status == PlanStatus.PAUSED
        assert [c["name"] for c in invoker.calls] == ["a"]
        stored = await store.load(plan.id)
        assert stored.status == PlanStatus.PAUSED
        assert _statuses(stored) == {"a": StepStatus.DONE, "b": StepStatus.WAITING}

        await orchestrator.resume(plan.id)
        await orchestrator.continue_execution(plan.id)
        assert [c["name"] for c in invoker.calls] == ["a", "b"]

    async def test_pause_during_verification_defers_completion(
        self, invoker: FakeInvoker, command_runner: FakeCommandRunner, store: InMemoryPlanStore
    ) -> None:
        judge = SlowJudge(delay=0.2)
        orchestrator = WorkflowOrchestrator(
            FakePlanner([make_step("a")]), invoker, store, command_runner, judge=judge
        )
        plan = await _started(orchestrator, make_config(ExternalValidation(criteria="a ran")))

        cycle = asyncio.create_task(orchestrator.continue_execution(plan.id))
        await asyncio.sleep(0.1)
        await orchestrator.pause(plan.id)
        report = await cycle

        assert report.plan_status == PlanStatus.PAUSED
        assert report.verification.succeeded
        assert (await store.load(plan.id)).status == PlanStatus.PAUSED

        await orchestrator.resume(plan.id)
        final = await orchestrator.continue_execution(plan.id)

        assert final.plan_status == PlanStatus.COMPLETED
        assert judge.calls == 2

    async def test_pause_during_replan_defers_failure(
        self, invoker: FakeInvoker, command_runner: FakeCommandRunner, store: InMemoryPlanStore
    ) -> None:
        planner = SlowPlanner([make_step("a", fail_times=1, fail="permanent")], delay=0.2)
        orchestrator = WorkflowOrchestrator(planner, invoker, store, command_runner)
        plan = await _started(orchestrator)

        cycle = asyncio.create_task(orchestrator.continue_execution(plan.id))
        await asyncio.sleep(0.1)
        await orchestrator.pause(plan.id)
        report = await cycle

        assert report.plan_status == PlanStatus.PAUSED
        assert report.plan_change is None
        stored = await store.load(plan.id)
        assert stored.status == PlanStatus.PAUSED
        assert stored.plan_changes == []
        assert not stored.get_step("a").superseded

        await orchestrator.resume(plan.id)
        final = await orchestrator.continue_execution(plan.id)

        assert final.plan_status == PlanStatus.FAILED
        assert final.snapshot.failure_reason == FailureReason.NO_REMEDIATION
        assert len(final.snapshot.plan_changes) == 1

    async def test_pause_twice_rejected(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a")]))
        plan = await _started(orchestrator)
        await orchestrator.pause(plan.id)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.pause(plan.id)

    async def test_resume_active_rejected(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a")]))
        plan = await _started(orchestrator)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.resume(plan.id)


class TestStop:
    async def test_waiting_steps_skipped(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a"), make_step("b", "a")]))
        plan = await _started(orchestrator)

        stopped = await orchestrator.stop(plan.id)

        assert stopped.status == PlanStatus.STOPPED
        assert _statuses(stopped) == {"a": StepStatus.SKIPPED, "b": StepStatus.SKIPPED}

    async def test_running_step_cancelled(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a", sleep=5), make_step("b", "a")]))
        plan = await _started(orchestrator)

        cycle = asyncio.create_task(orchestrator.continue_execution(plan.id))
        await asyncio.sleep(0.05)
        stopped = await orchestrator.stop(plan.id)
        await cycle

        a = stopped.get_step("a")
        assert a.status == StepStatus.FAILED
        assert a.error_kind == StepErrorKind.CANCELLED
        assert stopped.get_step("b").status == StepStatus.SKIPPED
        assert stopped.status == PlanStatus.STOPPED

    async def test_stop_terminal_rejected(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a")]))
        plan = await _started(orchestrator)
        await orchestrator.continue_execution(plan.id)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.stop(plan.id)

    async def test_stop_from_another_process_is_adopted(
        self,
        invoker: FakeInvoker,
        command_runner: FakeCommandRunner,
        store: InMemoryPlanStore,
    ) -> None:
        planner = FakePlanner([make_step("a")])
        ours = WorkflowOrchestrator(planner, invoker, store, command_runner)
        theirs = WorkflowOrchestrator(planner, invoker, store, command_runner)
        plan = await _started(ours)

        await theirs.stop(plan.id)
        report = await ours.continue_execution(plan.id)

        assert not report.executed
        assert report.plan_status == PlanStatus.STOPPED
        assert report.snapshot.get_step("a").status == StepStatus.SKIPPED
        assert invoker.calls == []


class TestExecuteStep:
    async def test_runs_ready_step(self, build, store: InMemoryPlanStore) -> None:
        orchestrator = build(FakePlanner([make_step("a"), make_step("b", "a")]))
        plan = await _started(orchestrator)

        outcome = await orchestrator.execute_step(plan.id, "a")

        assert outcome.succeeded
        stored = await store.load(plan.id)
        assert stored.get_step("a").status == StepStatus.DONE
        assert stored.current_iteration == 0

    async def test_unknown_step(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a")]))
        plan = await _started(orchestrator)

        with pytest.raises(StepNotFoundError):
            await orchestrator.execute_step(plan.id, "nope")

    async def test_unmet_dependencies(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a"), make_step("b", "a")]))
        plan = await _started(orchestrator)

        with pytest.raises(StepNotReadyError, match="a"):
            await orchestrator.execute_step(plan.id, "b")

    async def test_finished_step_not_rerun(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a")]))
        plan = await _started(orchestrator)
        await orchestrator.execute_step(plan.id, "a")

        with pytest.raises(StepNotReadyError):
            await orchestrator.execute_step(plan.id, "a")

    async def test_failure_is_replanned_by_next_cycle(self, build) -> None:
        planner = FakePlanner([make_step("a", fail="permanent", fail_times=1)])
        orchestrator = build(planner)
        plan = await _started(orchestrator)

        outcome = await orchestrator.execute_step(plan.id, "a")
        report = await orchestrator.continue_execution(plan.id)

        assert outcome.status == StepStatus.FAILED
        assert planner.contexts[0].trigger == ReplanTrigger.STEP_FAILURE
        assert report.plan_status == PlanStatus.FAILED


class TestVerifyAndStatus:
    async def test_verify_is_read_only(self, build, store: InMemoryPlanStore) -> None:
        orchestrator = build(FakePlanner([make_step("a")]))
        plan = await _started(orchestrator)

        result = await orchestrator.verify(plan.id)

        assert result.outcome == VerificationOutcome.FAILURE
        after = await orchestrator.status(plan.id)
        assert after.status == PlanStatus.ACTIVE
        assert after.last_verification is None
        assert after.updated_at == plan.updated_at

    async def test_status_is_a_copy(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a")]))
        plan = await _started(orchestrator)

        plan.steps[0].status = StepStatus.DONE

        assert (await orchestrator.status(plan.id)).steps[0].status == StepStatus.WAITING

    async def test_list_plans(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a")]))
        first = await _started(orchestrator)
        second = await _started(orchestrator)

        assert set(await orchestrator.list_plans()) == {first.id, second.id}


class TestRun:
    async def test_runs_to_completion(self, build) -> None:
        orchestrator = build(FakePlanner([make_step("a"), make_step("b", "a")]))
        plan = await _started(orchestrator)
        reports: list[IterationReport] = []

        final = await orchestrator.run(plan.id, reports.append)

        assert final.status == PlanStatus.COMPLETED
        assert [r.iteration for r in reports] == [1, 2]

    async def test_stops_at_iteration_budget(self, build) -> None:
        planner = FakePlanner(
            [make_step("a", fail="permanent", fail_times=1)],
            revisions=[
                PlanDelta(new_steps=[make_step(f"a{i}", fail="permanent", fail_times=1)])
                for i in range(5)
            ],
        )
        orchestrator = build(planner)
        plan = await _started(orchestrator, make_config(max_iterations=2))

        final = await orchestrator.run(plan.id)

        assert final.status == PlanStatus.FAILED
        assert final.failure_reason == FailureReason.MAX_ITERATIONS_EXCEEDED
        assert final.current_iteration == 2
