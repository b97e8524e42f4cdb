"""
tlsmailer
=========

Send plain text email over an implicit TLS (SMTPS) connection, with an
asyncio SMTP client underneath.

Basic usage:

    >>> import tlsmailer
    >>> spec = tlsmailer.MessageSpec(
    ...     host="smtp.example.com",
    ...     port=465,
    ...     sender="me@example.com",
    ...     password="secret",
    ...     to=["you@example.com"],
    ...     subject="Hello",
    ...     body="Hello World",
    ... )
    >>> tlsmailer.send(spec)
    (250, OK)
"""

from .api import send, send_async
from .email import build_message, encode_subject
from .errors import (
    SMTPAuthenticationError,
    SMTPConnectError,
    SMTPConnectResponseError,
    SMTPConnectTimeoutError,
    SMTPDataError,
    SMTPException,
    SMTPHeloError,
    SMTPNotSupported,
    SMTPReadTimeoutError,
    SMTPRecipientRefused,
    SMTPResponseException,
    SMTPSenderRefused,
    SMTPServerDisconnected,
    SMTPTimeoutError,
    SMTPTransportError,
    SMTPValidationError,
)
from .models import MessageContent, MessageSpec
from .response import SMTPResponse
from .smtp import SMTP
from .typing import SessionState, SMTPStatus


__title__ = "tlsmailer"
__version__ = "1.0.0"
__license__ = "MIT"
__all__ = (
    "send",
    "send_async",
    "build_message",
    "encode_subject",
    "MessageContent",
    "MessageSpec",
    "SMTP",
    "SMTPResponse",
    "SMTPStatus",
    "SessionState",
    "SMTPAuthenticationError",
    "SMTPConnectError",
    "SMTPDataError",
    "SMTPException",
    "SMTPHeloError",
    "SMTPNotSupported",
    "SMTPRecipientRefused",
    "SMTPResponseException",
    "SMTPSenderRefused",
    "SMTPServerDisconnected",
    "SMTPTimeoutError",
    "SMTPTransportError",
    "SMTPValidationError",
    "SMTPConnectTimeoutError",
    "SMTPReadTimeoutError",
    "SMTPConnectResponseError",
)
