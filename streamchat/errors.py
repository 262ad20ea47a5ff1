"""Error taxonomy for the streaming chat core.

Remote failures are split into two user-facing kinds: authorization or
billing problems, which need the user to fix their credential, and
everything else, which is worth a plain retry. Classification prefers
structured exception types and falls back to matching the service's error
text only when nothing else identifies the cause.
"""

from __future__ import annotations

from enum import StrEnum

import litellm


class ErrorKind(StrEnum):
    """Ways a submission or exchange can end without a normal reply."""

    EMPTY_INPUT = "empty_input"
    REENTRANT_SUBMISSION = "reentrant_submission"
    AUTHORIZATION = "authorization"
    TRANSPORT = "transport"
    INVALID_TARGET = "invalid_target"


AUTHORIZATION_MESSAGE = (
    "API Key issue: Please ensure a valid, paid API key is selected. "
    "See the billing documentation (ai.google.dev/gemini-api/docs/billing). "
    "Users must select an API key from a paid GCP project."
)
GENERIC_MESSAGE = "Failed to fetch response from the model. Please try again."
INTERNAL_MESSAGE = "Internal error while updating the conversation. Please try again."

# Text the Gemini API puts in its error when the key's project has no billing
_AUTHORIZATION_MARKER = "Requested entity was not found."

_STRUCTURED_AUTH_ERRORS: tuple[type[BaseException], ...] = (
    litellm.AuthenticationError,
    litellm.PermissionDeniedError,
    litellm.NotFoundError,
)


class StreamChatError(Exception):
    """Base exception for all streamchat errors."""

    kind: ErrorKind = ErrorKind.TRANSPORT


class AuthorizationFailure(StreamChatError):
    """The remote service rejected the credential or its billing account."""

    kind = ErrorKind.AUTHORIZATION


class TransportFailure(StreamChatError):
    """Network, protocol, or any other failure of the remote stream."""

    kind = ErrorKind.TRANSPORT


class InvalidTargetError(StreamChatError):
    """A transcript mutation targeted a stale or non-terminal entry."""

    kind = ErrorKind.INVALID_TARGET


def classify_failure(error: BaseException) -> ErrorKind:
    """Map an exception raised by a stream provider to an ErrorKind.

    Our own exception types carry their kind. LiteLLM's authentication,
    permission and not-found errors count as authorization failures. As a
    last resort the error text is searched for the marker the Gemini API
    uses for unfunded keys. Anything else is a transport failure.
    """
    if isinstance(error, StreamChatError):
        return error.kind
    if isinstance(error, _STRUCTURED_AUTH_ERRORS):
        return ErrorKind.AUTHORIZATION
    if _AUTHORIZATION_MARKER in str(error):
        return ErrorKind.AUTHORIZATION
    return ErrorKind.TRANSPORT


def user_message(kind: ErrorKind) -> str:
    """Return the diagnostic shown to the user for a failed exchange."""
    if kind == ErrorKind.AUTHORIZATION:
        return AUTHORIZATION_MESSAGE
    if kind == ErrorKind.INVALID_TARGET:
        return INTERNAL_MESSAGE
    return GENERIC_MESSAGE
