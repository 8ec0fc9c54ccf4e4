"""
Pipeline Error Taxonomy

Every structural failure is raised as a PipelineError subclass that carries
the originating stage, a stable error kind and free-form diagnostic details.
"""

from enum import Enum
from typing import Any, Dict, Optional


class Stage(str, Enum):
    """Pipeline stages, in execution order"""
    LOAD = "load"
    TRANSFORM = "transform"
    MODEL = "model"


class ErrorKind(str, Enum):
    """Stable error codes written to logs and CLI output"""
    SOURCE_UNAVAILABLE = "SourceUnavailable"
    SCHEMA_MISMATCH = "SchemaMismatch"
    VALIDATION_ERROR = "ValidationError"
    ORPHAN_REFERENCE = "OrphanReference"
    REFERENTIAL_INTEGRITY_VIOLATION = "ReferentialIntegrityViolation"
    STAGE_INPUT_MISSING = "StageInputMissing"


class PipelineError(Exception):
    """Base class for errors that abort a pipeline stage"""

    kind: ErrorKind

    def __init__(
        self,
        message: str,
        stage: Optional[Stage] = None,
        **details: Any,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        """Diagnostic fields for structured logs and CLI output"""
        return {
            "error_code": self.kind.value,
            "error_message": self.message,
            "error_stage": self.stage.value if self.stage else None,
            **self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(stage={self.stage!r}, message={self.message!r})"


class SourceUnavailable(PipelineError):
    """An extract cannot be located or read"""
    kind = ErrorKind.SOURCE_UNAVAILABLE


class SchemaMismatch(PipelineError):
    """An extract's header or field count disagrees with its staging layout"""
    kind = ErrorKind.SCHEMA_MISMATCH


class ValidationError(PipelineError):
    """A record cannot be repaired, e.g. its business key is missing"""
    kind = ErrorKind.VALIDATION_ERROR


class ReferentialIntegrityViolation(PipelineError):
    """A model invariant does not hold after assembly"""
    kind = ErrorKind.REFERENTIAL_INTEGRITY_VIOLATION


class StageInputMissing(PipelineError):
    """A stage was started before the stage it depends on produced output"""
    kind = ErrorKind.STAGE_INPUT_MISSING
