import re
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator


class FileExists(BaseModel, frozen=True):
    kind: Literal["file_exists"] = "file_exists"
    path_patterns: list[str] = Field(min_length=1)


class CommandSuccess(BaseModel, frozen=True):
    kind: Literal["command_success"] = "command_success"
    command: str = Field(min_length=1)
    expected_exit_code: int = 0


class ExternalValidation(BaseModel, frozen=True):
    """Judgement delegated to an external judge (typically an LLM)."""

    kind: Literal["external_validation"] = "external_validation"
    criteria: str = Field(min_length=1)


class OutputPattern(BaseModel, frozen=True):
    kind: Literal["output_pattern"] = "output_pattern"
    regex: str

    @field_validator("regex")
    @classmethod
    def validate_regex(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern: {e}") from e
        return v


class Combined(BaseModel, frozen=True):
    """Conjunction of strategies: succeeds only if every sub-strategy
    succeeds."""

    kind: Literal["combined"] = "combined"
    strategies: list["VerificationStrategy"] = Field(min_length=1)


VerificationStrategy = Annotated[
    FileExists | CommandSuccess | ExternalValidation | OutputPattern | Combined,
    Field(discriminator="kind"),
]

Combined.model_rebuild()


def build_strategy(
    name: str,
    path_patterns: list[str] | None = None,
    command: str | None = None,
    criteria: str | None = None,
) -> VerificationStrategy:
    """Build a strategy from its command-line name.

    Known names are ``file_exists``, ``command_success``, ``llm_validation``
    (alias ``external_validation``) and ``combined``. Any other name is
    treated as an output regex.

    Raises:
        ValueError: If the inputs the named strategy needs are missing.
    """
    match name.strip().lower():
        case "file_exists":
            if not path_patterns:
                raise ValueError("file_exists verification needs at least one path pattern")
            return FileExists(path_patterns=path_patterns)

        case "command_success":
            if not command:
                raise ValueError("command_success verification needs a command")
            return CommandSuccess(command=command)

        case "llm_validation" | "external_validation":
            if not criteria:
                raise ValueError("llm_validation verification needs criteria")
            return ExternalValidation(criteria=criteria)

        case "combined":
            parts: list[VerificationStrategy] = []
            if path_patterns:
                parts.append(FileExists(path_patterns=path_patterns))
            if command:
                parts.append(CommandSuccess(command=command))
            if criteria:
                parts.append(ExternalValidation(criteria=criteria))
            if not parts:
                raise ValueError(
                    "combined verification needs path patterns, a command or criteria"
                )
            return Combined(strategies=parts)

        case _:
            return OutputPattern(regex=name.strip())


def describe_strategy(strategy: VerificationStrategy) -> str:
    match strategy:
        case FileExists(path_patterns=patterns):
            return f"files exist: {', '.join(patterns)}"
        case CommandSuccess(command=command, expected_exit_code=code):
            return f"`{command}` exits {code}"
        case ExternalValidation(criteria=criteria):
            return f"judge: {criteria}"
        case OutputPattern(regex=regex):
            return f"output matches /{regex}/"
        case Combined(strategies=parts):
            return " AND ".join(f"({describe_strategy(p)})" for p in parts)
    raise TypeError(f"Unknown verification strategy: {strategy!r}")
