"""Exceptions raised by the AI integration.

Every failure the assistant can produce derives from AIError so that host
applications can keep running with AI features inert by catching a single
base class.
"""


class AIError(Exception):
    """Base exception for the AI integration."""

    pass


class AIDisabledError(AIError):
    """Raised when an AI operation is requested while AI is disabled."""

    pass


class AINotReadyError(AIError):
    """Raised when the agent runtime could not be initialized.

    Initialization is retried lazily on the next operation.
    """

    pass


class SessionCreationError(AIError):
    """Raised when a conversation session could not be created."""

    pass


class SendError(AIError):
    """Raised when a prompt turn fails or times out."""

    pass


class ToolError(AIError):
    """Raised by a tool handler; reported to the agent as a failed call."""

    pass


class RuntimeUnavailableError(AIError):
    """Raised when the agent runtime binary cannot be located or fetched."""

    pass


class UnsupportedPlatformError(RuntimeUnavailableError):
    """Raised when no runtime build exists for this OS/architecture."""

    pass
