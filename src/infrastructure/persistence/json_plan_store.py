import json
from pathlib import Path
from typing import Any
from uuid import UUID

import aiofiles
from loguru import logger
from pydantic import ValidationError

from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.errors import StateCorruptionError
from src.domain.ports.plan_store_port import PlanStorePort, StoreError
from src.infrastructure.persistence._paths import PlanPathBuilder
from src.infrastructure.persistence.async_file_lock import async_file_lock
from src.infrastructure.persistence.atomic_io import atomic_write


class JsonPlanStore(PlanStorePort):
    """File-based JSON storage implementation of PlanStorePort.

    Layout: ``<state_dir>/plans/<plan hex>/plan.json`` guarded by a
    sibling ``.lock`` file. Writes are atomic (temp file + rename) and
    last-writer-wins by ``updated_at``.
    """

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir
        self.paths = PlanPathBuilder(state_dir)

    async def _read_json(self, path: Path) -> dict[str, Any] | None:
        """Read JSON file, return None if not exists."""
        if not path.exists():
            return None
        async with aiofiles.open(path, encoding="utf-8") as f:
            content = await f.read()
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise StateCorruptionError(f"Corrupted plan file {path}: {e}") from e
        if not isinstance(data, dict):
            raise StateCorruptionError(f"Corrupted plan file {path}: expected a JSON object")
        return data

    def _parse(self, path: Path, data: dict[str, Any]) -> WorkflowPlan:
        try:
            return WorkflowPlan.model_validate(data)
        except ValidationError as e:
            raise StateCorruptionError(f"Invalid plan file {path}: {e}") from e

    async def save(self, plan: WorkflowPlan) -> None:
        """Save plan snapshot.

        A snapshot older than the stored one is ignored, so a slow writer
        never rolls a plan back.
        """
        path = self.paths.plan_path(plan.id)
        try:
            self.paths.plan_dir(plan.id).mkdir(parents=True, exist_ok=True)
            async with async_file_lock(self.paths.lock_path(plan.id)):
                existing = await self._read_json(path)
                if existing is not None:
                    stored = self._parse(path, existing)
                    if stored.updated_at > plan.updated_at:
                        logger.warning(
                            "Ignoring stale snapshot of plan {} ({} < {})",
                            plan.id,
                            plan.updated_at.isoformat(),
                            stored.updated_at.isoformat(),
                        )
                        return
                await atomic_write(path, plan.model_dump_json(indent=2))
        except OSError as e:
            raise StoreError(f"Failed to save plan {plan.id}: {e}") from e
        logger.debug("Saved plan snapshot: {}", plan.id)

    async def load(self, plan_id: UUID) -> WorkflowPlan | None:
        """Load plan by ID."""
        path = self.paths.plan_path(plan_id)
        if not path.exists():
            logger.debug("Plan not found: {}", plan_id)
            return None

        try:
            async with async_file_lock(self.paths.lock_path(plan_id)):
                data = await self._read_json(path)
        except OSError as e:
            raise StoreError(f"Failed to load plan {plan_id}: {e}") from e
        if data is None:
            return None
        return self._parse(path, data)

    async def list_plans(self) -> list[UUID]:
        """List all plan IDs, oldest directory first."""
        plans_dir = self.paths.plans_dir
        if not plans_dir.exists():
            return []

        plan_dirs = sorted(
            (d for d in plans_dir.iterdir() if d.is_dir() and (d / "plan.json").exists()),
            key=lambda d: (d / "plan.json").stat().st_mtime,
        )
        plan_ids: list[UUID] = []
        for plan_dir in plan_dirs:
            try:
                plan_ids.append(UUID(hex=plan_dir.name))
            except ValueError:
                logger.warning("Invalid plan directory name: {}", plan_dir.name)
        return plan_ids
