"""Exception hierarchy for the co11y backend.

Routers translate these into HTTP responses; the live hub handles the
client channel errors itself and never lets them reach aggregation.
"""
from __future__ import annotations


class Co11yError(Exception):
    """Base class for all co11y errors."""


class NotFoundError(Co11yError, LookupError):
    """A session, project or subagent id is not present in discovery results."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} not found: {identifier}")

    @property
    def detail(self) -> str:
        return f"{self.kind.capitalize()} not found"


class HookValidationError(Co11yError, ValueError):
    """An ingested hook event payload failed structural validation."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ClientChannelError(Co11yError):
    """Delivery to a single push client failed."""


class ClientClosedError(ClientChannelError):
    """The client channel was already closed."""


class ClientBackpressureError(ClientChannelError):
    """The client's outbound queue is full."""
