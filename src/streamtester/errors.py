"""Error taxonomy shared by the generators, stream tasks and the session registry."""

from __future__ import annotations


class StreamError(Exception):
    """Base class for every error the core reports."""

    def __init__(self, message: str, session_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.session_id = session_id

    def __str__(self) -> str:
        if self.session_id:
            return f"[{self.session_id}] {self.message}"
        return self.message


class GenerationError(StreamError):
    """A placeholder value could not be generated."""

    def __init__(self, message: str, placeholder: str | None = None, session_id: str | None = None):
        super().__init__(message, session_id=session_id)
        self.placeholder = placeholder

    def __str__(self) -> str:
        base = super().__str__()
        if self.placeholder:
            return f"{base} (placeholder '{self.placeholder}')"
        return base


class EmptyValueSetError(GenerationError):
    """A manual parameter has no values to choose from."""


class PublishError(StreamError):
    """The broker rejected or failed to accept a message."""


class SubscriptionError(StreamError):
    """A consumer subscription failed or dropped."""


class UnknownSessionError(StreamError):
    """Raised by read operations for a session id the registry has never seen."""


class ParameterError(StreamError):
    """A parameter command could not be applied."""


class ConfigError(StreamError):
    """A settings or session file is malformed."""


class SessionConflictError(StreamError):
    """A session id is already bound to the other session kind."""
