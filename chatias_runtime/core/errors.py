"""Runtime bridge errors and failure classification."""

from collections.abc import Iterable
from enum import Enum

import httpx

# Substrings that mark a failure as "the runtime is unreachable" rather than
# "this one model failed". Matched against lower-cased exception text.
DEFAULT_CONNECTION_TOKENS = (
    "econnrefused",
    "econnreset",
    "fetch failed",
    "network",
    "timeout",
    "socket",
    "connection",
)


class RuntimeBridgeError(Exception):
    """Base error for the runtime bridge."""


class ConnectError(RuntimeBridgeError):
    """The runtime could not be reached or did not become ready in time."""


class SessionError(RuntimeBridgeError):
    """A runtime session could not be validated or created."""


class RuntimeRequestError(RuntimeBridgeError):
    """The runtime answered a request with an HTTP error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ErrorKind(str, Enum):
    CONNECTION = "connection"
    MODEL = "model"


def _exception_chain(error: BaseException) -> Iterable[BaseException]:
    seen = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def describe(error: BaseException) -> str:
    """Readable message for an exception, falling back to its type name."""
    message = str(error).strip()
    return message or type(error).__name__


def classify(error: BaseException, tokens: Iterable[str] = DEFAULT_CONNECTION_TOKENS) -> ErrorKind:
    """Decide whether a failed runtime call means the whole connection is dead.

    httpx transport errors and OS-level socket errors are always
    connection-level. Anything else is matched by substring against the
    exception chain's type names and messages.
    """
    chain = list(_exception_chain(error))
    if any(isinstance(exc, (httpx.TransportError, OSError)) for exc in chain):
        return ErrorKind.CONNECTION

    text = " ".join(f"{type(exc).__name__} {exc}" for exc in chain).lower()
    if any(token.lower() in text for token in tokens):
        return ErrorKind.CONNECTION
    return ErrorKind.MODEL
