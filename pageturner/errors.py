"""Exception hierarchy for the capture engine."""


class PageTurnerError(Exception):
    """Base class for capture engine failures."""


class AgentUnavailableError(PageTurnerError):
    """The in-page navigation agent is not present or did not answer."""


class NavigationError(PageTurnerError):
    """A navigation command failed even after re-installing the agent."""


class CaptureError(PageTurnerError):
    """The viewport could not be captured or the page could not be stored."""


class SessionActiveError(PageTurnerError):
    """A capture session is already running."""


class PreflightError(PageTurnerError):
    """A session may not start: bad credential or spending ceiling reached."""


class CommandError(PageTurnerError):
    """A command payload is malformed or names an unknown action."""
