"""Exception types raised while translating and executing steps."""

from __future__ import annotations


class ItestError(Exception):
    """Base class for runner errors."""


class InvalidDescriptor(ItestError):
    """A translated step failed its type-specific validation."""

    def __init__(self, message: str, descriptor=None):
        super().__init__(message)
        self.descriptor = descriptor


class BackendExecutionError(ItestError):
    """The automation backend failed while running a step."""


class SessionUnavailable(ItestError):
    """No backend session could be obtained for a workflow."""


class ScriptError(ItestError):
    """A scripted step could not be parsed or used an unknown operation."""


class ScriptAssertionError(ScriptError, AssertionError):
    """An expectation inside a scripted step did not hold."""
