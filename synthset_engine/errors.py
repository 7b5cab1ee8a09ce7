"""Error taxonomy for the generation pipeline."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for every error raised by synthset."""


class ExpansionError(PipelineError):
    """Prompt expansion failed (text model call, refusal, or empty output)."""


class ParseError(ExpansionError):
    """The text model answered, but no usable prompt list could be parsed."""


class SynthesisError(PipelineError):
    """A single image synthesis call failed."""


class NoImageInResponse(SynthesisError):
    """The backend answered without any image payload."""


class ConfigError(PipelineError):
    """Backend configuration is unusable; raised before any network call."""


class MissingCredentials(ConfigError):
    """Endpoint or API key required by a backend is absent."""


class SessionNotFound(PipelineError, KeyError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' not found.")
        self.session_id = session_id

    def __str__(self) -> str:
        return str(self.args[0])


class SessionValidationError(PipelineError, ValueError):
    """Session creation arguments are out of range."""


class InvalidTransition(PipelineError):
    def __init__(self, session_id: str, current: str, target: str) -> None:
        super().__init__(f"Session '{session_id}' cannot move from '{current}' to '{target}'.")
        self.session_id = session_id
        self.current = current
        self.target = target


class RunAlreadyActive(PipelineError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' already has an active run.")
        self.session_id = session_id


class UnexpectedError(PipelineError):
    """Wraps a failure that escaped local handling and failed the run."""
