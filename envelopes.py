"""Outbound message envelopes.

Every frame sent to a client is a flat JSON object with a ``type`` field.
Envelopes are rendered by hand, so every string field goes through
:func:`escape_json` before it is embedded.
"""
from typing import Iterable

SYSTEM = "system"
JOIN = "join"
LEAVE = "leave"
MESSAGE = "message"
USERS = "users"

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def escape_json(text) -> str:
    """Escape a string for embedding between double quotes in a JSON document.

    Backslash, quote, newline, carriage return and tab get their short
    escapes; any other control character is written as ``\\u00XX``.
    """
    if text is None:
        return ""
    out = []
    for ch in str(text):
        escaped = _ESCAPES.get(ch)
        if escaped is not None:
            out.append(escaped)
        elif ch < " ":
            out.append("\\u%04x" % ord(ch))
        else:
            out.append(ch)
    return "".join(out)


def system_envelope(message: str) -> str:
    return '{"type":"%s","message":"%s"}' % (SYSTEM, escape_json(message))


def welcome_envelope(username: str, room: str) -> str:
    return system_envelope(f"Welcome {username} to {room}!")


def join_envelope(username: str) -> str:
    return '{"type":"%s","user":"%s"}' % (JOIN, escape_json(username))


def leave_envelope(username: str) -> str:
    return '{"type":"%s","user":"%s"}' % (LEAVE, escape_json(username))


def message_envelope(username: str, body: str, timestamp_millis: int) -> str:
    return '{"type":"%s","user":"%s","message":"%s","time":"%d"}' % (
        MESSAGE,
        escape_json(username),
        escape_json(body),
        timestamp_millis,
    )


def users_envelope(usernames: Iterable[str]) -> str:
    return '{"type":"%s","users":"%s"}' % (USERS, escape_json(", ".join(usernames)))
