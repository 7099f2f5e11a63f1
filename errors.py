"""Error taxonomy for the chat relay.

Only InvalidHandshake is surfaced to the client; everything else is absorbed
and logged where it happens.
"""


class ChatError(Exception):
    """Base class for chat relay errors."""


class InvalidHandshake(ChatError):
    """Username or room missing when a connection opens."""


class SendError(ChatError):
    """A write to a single connection failed or the connection is closed."""


class PersistenceError(ChatError):
    """The history store or user store failed."""


class TransportError(ChatError):
    """The transport reported an error on a connection."""
