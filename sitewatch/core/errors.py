"""Exception hierarchy shared by the registry, jobs and engine layers."""


class SitewatchError(Exception):
    """Base exception for dashboard failures."""


class TransientIOError(SitewatchError):
    """A backend call failed; state is preserved and nothing is retried."""


class LoadError(TransientIOError):
    """The registry could not be loaded or the stored data is malformed."""


class SaveError(TransientIOError):
    """The registry could not be written."""


class EngineError(TransientIOError):
    """A check, capture, bulk or field-update command failed."""


class StateConflictError(SitewatchError):
    """An operation raced with the current state and was rejected locally."""


class AlreadyRunning(StateConflictError):
    """A capture job is already active for the requested target."""


class NotRunning(StateConflictError):
    """There is no running bulk job to act on."""


class InvalidInputError(SitewatchError, ValueError):
    """Input was rejected before any state was touched."""


class IndeterminateStateError(SitewatchError):
    """A cancel request failed, so the engine's real state is unknown."""
