from salesflow.platform.security.context import Principal
from salesflow.platform.security.errors import (
    Conflict,
    ConflictOnConvert,
    Forbidden,
    InvalidTransition,
    NotFoundError,
    PipelineError,
    Unauthorized,
    UnknownStage,
    ValidationError,
)

__all__ = [
    "Conflict",
    "ConflictOnConvert",
    "Forbidden",
    "InvalidTransition",
    "NotFoundError",
    "PipelineError",
    "Principal",
    "Unauthorized",
    "UnknownStage",
    "ValidationError",
]
