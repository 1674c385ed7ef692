"""Error taxonomy for building and running API sequences.

Step-level errors (subclasses of StepError) never escape the executor: they
are turned into a Failure result for the step. The remaining errors signal
misuse by the caller and propagate.
"""


class SequencerError(Exception):
    """Base class for all api-sequencer errors."""


class StepError(SequencerError):
    """An error that downgrades a single step to a Failure result."""

    kind = "StepError"

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


class MissingRequiredParameter(StepError):
    kind = "MissingRequiredParameter"

    def __init__(self, name: str):
        super().__init__(f"Missing required path parameter: {name}")
        self.name = name


class InvalidBodyJSON(StepError):
    kind = "InvalidBodyJSON"

    def __init__(self, detail: str):
        super().__init__(f"Invalid JSON in request body: {detail}")
        self.detail = detail


class UnknownStepReference(StepError):
    kind = "UnknownStepReference"

    def __init__(self, reference: str, reason: str = "no result is stored for this step"):
        super().__init__(f"Unknown step reference '{reference}': {reason}")
        self.reference = reference


class IterationSourceNotArray(StepError):
    kind = "IterationSourceNotArray"

    def __init__(self, expression: str, actual: str):
        super().__init__(f"Iteration source '{expression}' resolved to {actual}, expected an array")
        self.expression = expression


class InvalidIterationConfig(StepError):
    kind = "InvalidIterationConfig"


class NetworkFailure(StepError):
    kind = "NetworkFailure"

    def __init__(self, detail: str):
        super().__init__(f"Network Error: {detail}")


class ApiError(StepError):
    kind = "ApiError"

    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}", status=status)
        self.api_message = message


class AlreadyRunning(SequencerError):
    """Raised when a run is requested while the same step or sequence is in flight."""


class StepNotFound(SequencerError):
    """Raised when a step id is not part of the session's sequence."""


class SequenceFileError(SequencerError):
    """Raised when an export document cannot be imported at all."""


class CatalogError(SequencerError):
    """Raised when an endpoint catalog source cannot be read."""


class ConfigError(SequencerError):
    """Raised when the settings file is unreadable or invalid."""
