from pydantic import BaseModel, Field

from src.domain.value_objects.workflow_enums import VerificationOutcome


class VerificationResult(BaseModel, frozen=True):
    outcome: VerificationOutcome
    reason: str
    score: float = 0.0  # fraction of passing checks
    details: list["VerificationResult"] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome == VerificationOutcome.SUCCESS

    @classmethod
    def success(cls, reason: str) -> "VerificationResult":
        return cls(outcome=VerificationOutcome.SUCCESS, reason=reason, score=1.0)

    @classmethod
    def failure(cls, reason: str, score: float = 0.0) -> "VerificationResult":
        return cls(outcome=VerificationOutcome.FAILURE, reason=reason, score=score)

    @classmethod
    def inconclusive(cls, reason: str) -> "VerificationResult":
        return cls(outcome=VerificationOutcome.INCONCLUSIVE, reason=reason)
