"""Exception types for the fan-out job pipeline."""


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    pass


class ConfigurationError(PipelineError, ValueError):
    """Raised when required configuration is missing or malformed."""

    pass


class OperationNotFoundError(PipelineError):
    """Raised when no domain operation is registered under a name."""

    def __init__(self, name: str, message: str = None):
        self.name = name
        if message is None:
            message = f"No operation registered under name {name!r}"
        super().__init__(message)


class DispatchError(PipelineError):
    """Raised when a worker invocation cannot be sent."""

    def __init__(self, message_id: str, message: str = None):
        self.message_id = message_id
        if message is None:
            message = f"Failed to dispatch message {message_id}"
        super().__init__(message)


class RemoteHttpError(PipelineError):
    """Raised when an HTTP request to a remote pipeline service fails."""

    def __init__(self, status_code: int, message: str, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")
