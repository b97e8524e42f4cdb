"""
Exceptions raised by tlsmailer.

Everything derives from :class:`SMTPException`. Connection and timeout
errors also derive from the matching builtin (``ConnectionError``,
``TimeoutError``), and validation errors from ``ValueError``, so callers can
catch them either way.
"""

from typing import Optional


class SMTPException(Exception):
    """
    Root of every error raised while building or sending a message.
    """

    def __init__(self, message: str, /) -> None:
        super().__init__(message)
        self.message = message


class SMTPValidationError(SMTPException, ValueError):
    """
    The message spec is incomplete or malformed. ``field`` names the
    offending attribute. Raised before any network activity.
    """

    def __init__(self, message: str, field: Optional[str] = None, /) -> None:
        super().__init__(message)
        self.field = field


class SMTPConnectError(SMTPException, ConnectionError):
    """
    No usable session could be opened: DNS, TCP or TLS failed, or the server
    did not greet us properly.
    """


class SMTPTransportError(SMTPException, ConnectionError):
    """
    Reading from or writing to an open connection failed.
    """


class SMTPServerDisconnected(SMTPTransportError):
    """
    The server went away, or a command needs a connection we don't have.
    """


class SMTPTimeoutError(SMTPException, TimeoutError):
    """
    A network step did not finish within the configured timeout.
    """


class SMTPConnectTimeoutError(SMTPTimeoutError, SMTPConnectError):
    """
    Connecting, the TLS handshake or the greeting took too long.
    """


class SMTPReadTimeoutError(SMTPTimeoutError):
    """
    The server did not answer a command in time.
    """


class SMTPNotSupported(SMTPException):
    """
    The server lacks an extension this message needs (AUTH PLAIN, SMTPUTF8).
    """


class SMTPResponseException(SMTPException):
    """
    The server answered with an unexpected reply code.
    """

    def __init__(self, code: int, message: str, /) -> None:
        super().__init__(message)
        self.code = code
        self.args = (code, message)

    def __str__(self) -> str:
        return f"({self.code}, {self.message})"


class SMTPConnectResponseError(SMTPResponseException, SMTPConnectError):
    """
    The greeting was not a 220.
    """


class SMTPHeloError(SMTPResponseException):
    """
    The server refused our EHLO or HELO.
    """


class SMTPAuthenticationError(SMTPResponseException):
    """
    AUTH PLAIN was rejected, usually because of a wrong password.
    """


class SMTPSenderRefused(SMTPResponseException):
    """
    MAIL FROM was rejected for ``sender``.
    """

    def __init__(self, code: int, message: str, sender: str, /) -> None:
        super().__init__(code, message)
        self.sender = sender


class SMTPRecipientRefused(SMTPResponseException):
    """
    RCPT TO was rejected for ``recipient``; no later recipient was tried.
    """

    def __init__(self, code: int, message: str, recipient: str, /) -> None:
        super().__init__(code, message)
        self.recipient = recipient


class SMTPDataError(SMTPResponseException):
    """
    DATA, or the message sent after it, was rejected.
    """
