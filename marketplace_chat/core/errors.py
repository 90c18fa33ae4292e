"""
Chat error taxonomy and its HTTP translation.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketplace_chat.core.logging import get_logger

logger = get_logger(__name__)


class ChatError(Exception):
    """Base class for errors raised by the chat core."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ChatError):
    """Rejected input: empty or oversized content, malformed ids, self-addressed sends."""

    status_code = 422


class NotFoundError(ChatError):
    """A listing or user referenced by a send does not exist."""

    status_code = 404


class TransientStoreError(ChatError):
    """The message store failed; the caller may retry."""

    status_code = 503


class ChannelError(ChatError):
    """The live delivery transport is unavailable."""

    status_code = 503


class SessionClosedError(ChatError):
    """An operation was attempted on a chat session after it was closed."""

    status_code = 409


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Render a :class:`ChatError` as an ``ErrorResponse`` body."""
    if isinstance(exc, TransientStoreError):
        logger.warning(
            "Store unavailable while serving request",
            extra={"extra_data": {"path": request.url.path, "error": exc.detail}},
        )
        detail = "Message store temporarily unavailable, please retry"
    else:
        detail = exc.detail
    return JSONResponse(status_code=exc.status_code, content={"detail": detail})


def register_error_handlers(app: FastAPI) -> None:
    """Install handlers for the chat error taxonomy."""
    app.add_exception_handler(ChatError, chat_error_handler)
