"""Exception types raised across the analyst."""

from __future__ import annotations


class AnalystError(Exception):
    """Base class for all analyst errors."""


class ConfigurationError(AnalystError, ValueError):
    """Raised when required configuration (API keys) is missing."""


class RegistryRequestFailure(AnalystError):
    """Network or HTTP failure talking to the Companies House API.

    ``status_code`` is the HTTP status for an error response, or ``None``
    when the request never produced one (connection error, timeout).
    """

    def __init__(self, message: str, *, url: str = "", status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code

    @property
    def is_transport_error(self) -> bool:
        return self.status_code is None


class DocumentUnavailable(AnalystError):
    """A filing document's metadata or content is missing or unreadable."""


class ModelRequestFailure(AnalystError):
    """Transport or authentication failure against the chat endpoint."""


class UnknownFunctionRequested(AnalystError):
    """The model named a function outside the fixed registry."""

    def __init__(self, name: str):
        super().__init__(f"Model requested unknown function: {name!r}")
        self.name = name


class MalformedFunctionArguments(AnalystError):
    """The model supplied function arguments that are not a JSON object."""

    def __init__(self, name: str, raw_arguments: str, reason: str):
        super().__init__(f"Malformed arguments for {name!r}: {reason}")
        self.name = name
        self.raw_arguments = raw_arguments


class IterationLimitExceeded(AnalystError):
    """The function-calling loop ran past its iteration cap."""

    def __init__(self, max_iterations: int):
        super().__init__(f"No final answer after {max_iterations} model calls")
        self.max_iterations = max_iterations
