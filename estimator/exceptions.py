# estimator/exceptions.py

"""Exception hierarchy for the project estimator."""

from typing import Any


class EstimatorError(Exception):
    """Base exception for all estimator errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class ConfigError(EstimatorError):
    """Configuration-related errors."""
    pass


class ValidationError(EstimatorError):
    """Rejected user or API input."""
    pass


class ScaleError(EstimatorError):
    """An estimation scale definition is inconsistent."""
    pass


class UnknownLabel(EstimatorError, KeyError):
    """A size label that is not part of the scale in use."""

    def __init__(self, label: Any, scale_name: str):
        super().__init__(
            f"Unknown size label {label!r} for scale '{scale_name}'",
            details={"label": label, "scale": scale_name},
        )
        self.label = label
        self.scale_name = scale_name

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class AuthenticationError(EstimatorError):
    """Bad credentials or missing session."""
    pass


class NotFoundError(EstimatorError):
    """A project, version or file does not exist (or is not yours)."""
    pass


class StorageError(EstimatorError):
    """Record store or blob storage failures."""
    pass


class GenerationError(EstimatorError):
    """The LLM generator returned nothing usable."""
    pass
