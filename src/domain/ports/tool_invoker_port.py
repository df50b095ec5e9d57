from abc import ABC, abstractmethod
from typing import Any

from src.domain.value_objects.cancellation import CancellationToken


class InvokerError(Exception):
    """Base class for tool invocation failures."""

    transient: bool = False


class TransientInvokerError(InvokerError):
    """Failure worth retrying (rate limit, temporary unavailability)."""

    transient = True


class PermanentInvokerError(InvokerError):
    """Failure that retrying cannot fix; the step fails immediately."""


class ToolInvokerPort(ABC):
    """Port for executing one step action against an external tool."""

    @abstractmethod
    async def invoke(
        self,
        action: dict[str, Any],
        timeout_s: float,
        token: CancellationToken | None = None,
    ) -> str:
        """Execute an action and return its raw output.

        Args:
            action: Opaque step payload.
            timeout_s: Time budget for this single attempt.
            token: Plan cancellation token; implementations may watch it to
                abort early.

        Raises:
            TransientInvokerError: For retryable failures.
            PermanentInvokerError: For failures that should not be retried.
        """
