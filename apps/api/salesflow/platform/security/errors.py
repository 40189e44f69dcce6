from __future__ import annotations


class PipelineError(Exception):
    """Base error for pipeline workflow and authorization failures."""

    code = "pipeline_error"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class Unauthorized(PipelineError):
    code = "unauthorized"

    def __init__(self, reason: str = "authentication required") -> None:
        super().__init__(reason)


class Forbidden(PipelineError):
    """Principal resolved but lacks the capability or ownership for the action."""

    code = "forbidden"


class InvalidTransition(PipelineError):
    code = "invalid_transition"


class UnknownStage(PipelineError):
    """A stored or requested stage value outside the canonical set."""

    code = "unknown_stage"

    def __init__(self, raw: object) -> None:
        self.raw = raw
        super().__init__(f"unknown stage value {raw!r}")


class Conflict(PipelineError):
    """A write lost against a concurrent change or a uniqueness rule."""

    code = "conflict"


class ConflictOnConvert(Conflict):
    code = "conflict_on_convert"

    def __init__(self, reason: str = "record was converted concurrently") -> None:
        super().__init__(reason)


class ValidationError(PipelineError):
    code = "validation_error"


class NotFoundError(PipelineError):
    code = "not_found"
