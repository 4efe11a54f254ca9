"""Exceptions related to mcoa-addon."""

__all__ = [
    "AddonException",
    "ConfigurationError",
    "MissingPreconditionError",
    "ApiException",
    "ObjectNotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "UnsupportedKindError",
]


class AddonException(Exception):
    """Generic base exception used for this library."""


class ConfigurationError(AddonException):
    """Raised when the addon configuration is not formatted as expected.

    These errors are not retried, they are surfaced on the addon status.
    """


class MissingPreconditionError(ConfigurationError):
    """Raised when a required collaborator (e.g. a set of CRDs) is not installed."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class ApiException(AddonException):
    """Raised when there is a failure talking to the cluster API."""


class ObjectNotFoundError(ApiException):
    """Raised when an object is not found on the API."""


class AlreadyExistsError(ApiException):
    """Raised when creating an object that already exists."""


class ConflictError(ApiException):
    """Raised when an update was issued against a stale resource version."""


class UnsupportedKindError(AddonException):
    """Raised when mutating an object kind without a registered policy."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Missing mutate implementation for resource kind {kind}")
        self.kind = kind
