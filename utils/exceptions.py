"""Error taxonomy for the deal intelligence pipeline.

Exceptions are internal to the pipeline. Every public service operation catches
them at its boundary and converts them into a failed ``AIResult`` so callers
never see raised errors for expected failure modes.
"""


class PipelineError(Exception):
    """
    Base class for pipeline failures.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for logging/metrics
    """
    def __init__(self, message: str, code: str = "PIPELINE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class InputValidationError(PipelineError):
    """Raised when input is rejected before any model call is made."""
    def __init__(self, message: str, code: str = "INVALID_INPUT"):
        super().__init__(message, code)


class ResponseShapeError(PipelineError):
    """
    Raised when the model response cannot be used.

    Covers invalid JSON, a missing required field, and enum values outside
    their closed set. These are never retried.
    """
    def __init__(self, message: str, code: str = "INVALID_RESPONSE"):
        super().__init__(message, code)


class ModelInvocationError(PipelineError):
    """Raised when the model adapter returns an error after its retries."""
    def __init__(self, message: str, code: str = "MODEL_ERROR"):
        super().__init__(message, code)


class RecordNotFoundError(PipelineError):
    """Raised when a persisted record referenced by id does not exist."""
    def __init__(self, message: str, code: str = "NOT_FOUND"):
        super().__init__(message, code)
