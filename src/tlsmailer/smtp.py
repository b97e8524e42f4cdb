"""
The SMTP session: an implicit TLS connection, EHLO, AUTH PLAIN and the
MAIL/RCPT/DATA transaction.
"""

import asyncio
import logging
import socket
import ssl
from collections.abc import Collection, Iterable
from types import TracebackType
from typing import Literal, Optional, Union

from .auth import auth_plain_encode
from .email import build_message, quote_address
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
)
from .esmtp import parse_esmtp_extensions
from .models import MessageContent
from .protocol import SMTPProtocol
from .response import SMTPResponse
from .typing import Default, SessionState, SMTPStatus


__all__ = ("SMTP", "SMTP_TLS_PORT", "DEFAULT_TIMEOUT")

logger = logging.getLogger(__name__)

SMTP_TLS_PORT = 465
DEFAULT_TIMEOUT = 60

TimeoutType = Optional[Union[float, Literal[Default.token]]]


def _check_reply(
    reply: SMTPResponse,
    accepted: Collection[int],
    error: type[SMTPResponseException],
    *details: str,
) -> SMTPResponse:
    if reply.code not in accepted:
        raise error(reply.code, reply.message, *details)

    return reply


class SMTP:
    """
    One session with a server that expects TLS from the first byte (SMTPS).

    Server, credentials and TLS policy are fixed per instance; message
    content is given per :meth:`send_message` call, so an open session can
    send several messages.

        >>> smtp = tlsmailer.SMTP(
        ...     hostname="smtp.example.com",
        ...     username="me@example.com",
        ...     password="secret",
        ... )
        >>> content = MessageContent(
        ...     sender="me@example.com", to=["you@example.com"],
        ...     subject="Hi", body="Hello",
        ... )
        >>> async def deliver():
        ...     async with smtp:
        ...         return await smtp.send_message(content)
        >>> asyncio.run(deliver())
        (250, OK)

    Leaving the ``async with`` block sends QUIT when the connection is still
    usable, and always closes the transport. A failing QUIT is logged and
    otherwise ignored.
    """

    def __init__(
        self,
        *,
        hostname: str = "localhost",
        port: int = SMTP_TLS_PORT,
        username: Optional[str] = None,
        password: Optional[str] = None,
        auth_identity: str = "",
        local_hostname: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        allow_insecure_tls: bool = False,
        tls_context: Optional[ssl.SSLContext] = None,
        cert_bundle: Optional[str] = None,
    ) -> None:
        """
        :keyword hostname: Server to connect to, and the name its certificate
            must carry.
        :keyword port: Server port, 465 unless told otherwise.
        :keyword username: If set, log in with AUTH PLAIN right after
            connecting.
        :keyword password: Password for ``username``.
        :keyword auth_identity: PLAIN authorization identity. Empty means
            "act as ``username``".
        :keyword local_hostname: Name sent with EHLO/HELO. Looked up with
            :func:`socket.getfqdn` on connect when not given.
        :keyword timeout: Seconds allowed for each network step. ``None``
            waits forever.
        :keyword allow_insecure_tls: Accept any server certificate. Traffic is
            still encrypted, but the server identity is not checked.
        :keyword tls_context: A ready :py:class:`ssl.SSLContext`, used as is.
        :keyword cert_bundle: CA file to verify the server certificate with.

        :raises ValueError: conflicting TLS options, or a newline in a hostname
        """
        self.hostname = hostname
        self.port = port
        self.username = username
        self.password = password
        self.auth_identity = auth_identity
        self.local_hostname = local_hostname
        self.timeout = timeout
        self.allow_insecure_tls = allow_insecure_tls
        self.tls_context = tls_context
        self.cert_bundle = cert_bundle

        self.protocol: Optional[SMTPProtocol] = None
        self.transport: Optional[asyncio.BaseTransport] = None
        self.state = SessionState.disconnected
        self._authenticated = False

        # What the server told us about itself
        self.hello_response: Optional[SMTPResponse] = None
        self.esmtp_extensions: dict[str, str] = {}
        self.server_auth_methods: list[str] = []

        self._validate_config()

    async def __aenter__(self) -> "SMTP":
        if not self.is_connected:
            await self.connect()

        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        if exc is not None:
            self.state = SessionState.failed

        # Cancellation, or a connection that already broke, gets no QUIT
        polite = exc is None or (
            isinstance(exc, Exception)
            and not isinstance(exc, (ConnectionError, TimeoutError))
        )

        try:
            if polite and self.is_connected:
                await self.quit()
        except SMTPException as quit_exc:
            logger.debug("QUIT failed, dropping connection: %s", quit_exc)
        finally:
            self.close()

    @property
    def is_connected(self) -> bool:
        return self.protocol is not None and self.protocol.is_connected

    def supports_extension(self, extension: str, /) -> bool:
        """
        True if the server's EHLO reply listed ``extension``.
        """
        return extension.lower() in self.esmtp_extensions

    def _validate_config(self) -> None:
        if self.tls_context is not None and self.allow_insecure_tls:
            raise ValueError(
                "allow_insecure_tls cannot be combined with a custom TLS context"
            )
        if self.tls_context is not None and self.cert_bundle is not None:
            raise ValueError("Either a TLS context or a cert bundle must be provided")

        for option in ("hostname", "local_hostname"):
            value = getattr(self, option)
            if value is not None and ("\r" in value or "\n" in value):
                raise ValueError(f"{option} contains prohibited newline characters")

    def _resolve_timeout(self, timeout: TimeoutType) -> Optional[float]:
        return self.timeout if timeout is Default.token else timeout

    def _build_tls_context(self) -> ssl.SSLContext:
        if self.tls_context is not None:
            return self.tls_context

        # Verifies the chain and the hostname unless told not to
        context = ssl.create_default_context(cafile=self.cert_bundle)
        if self.allow_insecure_tls:
            logger.warning(
                "Certificate verification disabled for %s; the server identity "
                "will not be checked",
                self.hostname,
            )
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        return context

    # Connection lifecycle #

    async def connect(
        self,
        *,
        hostname: Union[str, Literal[Default.token]] = Default.token,
        port: Union[int, Literal[Default.token]] = Default.token,
        timeout: TimeoutType = Default.token,
    ) -> SMTPResponse:
        """
        Open the TLS connection, read the greeting and, when a username is
        configured, log in. ``hostname`` and ``port`` replace the values the
        instance was created with.

        :raises SMTPConnectError: DNS, TCP or TLS failure, or a bad greeting
        :raises SMTPConnectTimeoutError: a connect step took too long
        :raises SMTPAuthenticationError: credentials rejected
        :raises SMTPNotSupported: the server does not offer AUTH PLAIN
        """
        if hostname is not Default.token:
            self.hostname = hostname
        if port is not Default.token:
            self.port = port
        self._validate_config()
        timeout = self._resolve_timeout(timeout)

        try:
            if self.local_hostname is None:
                self.local_hostname = await self._lookup_local_hostname(timeout)

            greeting = await self._open_connection(timeout)
            self.state = SessionState.connected

            if self.username is not None:
                await self.login(self.username, self.password or "", timeout=timeout)
        except BaseException:
            self.state = SessionState.failed
            self.close()
            raise

        return greeting

    async def _lookup_local_hostname(self, timeout: Optional[float]) -> str:
        # getfqdn may do a reverse DNS lookup, so it runs off the loop
        try:
            return await asyncio.wait_for(asyncio.to_thread(socket.getfqdn), timeout)
        except asyncio.TimeoutError as exc:
            raise SMTPConnectTimeoutError(
                "Timed out looking up the local hostname"
            ) from exc

    async def _open_connection(self, timeout: Optional[float]) -> SMTPResponse:
        loop = asyncio.get_running_loop()
        protocol = SMTPProtocol(
            loop=loop,
            connection_lost_callback=lambda: self._on_connection_lost(protocol),
        )
        server = f"{self.hostname}:{self.port}"

        logger.debug("opening TLS connection to %s", server)
        try:
            transport, _ = await asyncio.wait_for(
                loop.create_connection(
                    lambda: protocol,
                    host=self.hostname,
                    port=self.port,
                    ssl=self._build_tls_context(),
                    server_hostname=self.hostname,
                    ssl_handshake_timeout=timeout,
                ),
                timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SMTPConnectTimeoutError(f"Timed out connecting to {server}") from exc
        except OSError as exc:
            raise SMTPConnectError(f"Could not connect to {server}: {exc}") from exc

        self.protocol = protocol
        self.transport = transport

        try:
            greeting = await protocol.read_response(timeout=timeout)
        except SMTPReadTimeoutError as exc:
            raise SMTPConnectTimeoutError(
                f"{server} did not send a greeting in time"
            ) from exc
        except SMTPServerDisconnected as exc:
            raise SMTPConnectError(
                f"{server} closed the connection before greeting"
            ) from exc

        if greeting.code != SMTPStatus.ready:
            raise SMTPConnectResponseError(greeting.code, greeting.message)

        logger.debug("connected to %s: %s", server, greeting)

        return greeting

    def _on_connection_lost(self, protocol: SMTPProtocol) -> None:
        # Ignore late notices from a connection we already dropped
        if protocol is self.protocol:
            self.close()

    def close(self) -> None:
        """
        Drop the connection without QUIT. Safe to call at any time.
        """
        transport = self.transport
        self.protocol = None
        self.transport = None
        if transport is not None and not transport.is_closing():
            transport.close()

        if self.state is not SessionState.failed:
            self.state = SessionState.closed

        self._authenticated = False
        self.hello_response = None
        self.esmtp_extensions = {}
        self.server_auth_methods = []

    async def execute_command(
        self, *args: bytes, timeout: TimeoutType = Default.token
    ) -> SMTPResponse:
        """
        Send one command and return the reply, whatever its code. A ``421``
        reply means the server is going away, so the connection is closed.

        :raises SMTPServerDisconnected: not connected, or the connection broke
        """
        if self.protocol is None:
            raise SMTPServerDisconnected("Server not connected")

        try:
            reply = await self.protocol.execute_command(
                *args, timeout=self._resolve_timeout(timeout)
            )
        except SMTPServerDisconnected:
            self.close()
            raise

        if reply.code == SMTPStatus.domain_unavailable:
            logger.debug("server is closing the channel, disconnecting")
            self.close()

        return reply

    # Greeting #

    async def ehlo(
        self, *, hostname: Optional[str] = None, timeout: TimeoutType = Default.token
    ) -> SMTPResponse:
        """
        Send EHLO and record the extensions the server lists.

        :raises SMTPHeloError: EHLO refused
        """
        name = hostname or self.local_hostname or "localhost"
        reply = await self.execute_command(
            b"EHLO", name.encode("ascii"), timeout=timeout
        )
        _check_reply(reply, (SMTPStatus.completed,), SMTPHeloError)

        self.hello_response = reply
        self.esmtp_extensions, self.server_auth_methods = parse_esmtp_extensions(
            reply.message
        )
        logger.debug("esmtp extensions: %s", self.esmtp_extensions)

        return reply

    async def helo(
        self, *, hostname: Optional[str] = None, timeout: TimeoutType = Default.token
    ) -> SMTPResponse:
        """
        Send HELO, for servers that do not speak ESMTP.

        :raises SMTPHeloError: HELO refused
        """
        name = hostname or self.local_hostname or "localhost"
        reply = await self.execute_command(
            b"HELO", name.encode("ascii"), timeout=timeout
        )
        _check_reply(reply, (SMTPStatus.completed,), SMTPHeloError)
        self.hello_response = reply

        return reply

    async def _greet(self, timeout: TimeoutType) -> None:
        # Once per connection, EHLO first
        if self.hello_response is not None:
            return

        try:
            await self.ehlo(timeout=timeout)
        except SMTPHeloError:
            if not self.is_connected:
                raise
            logger.debug("EHLO refused, falling back to HELO")
            await self.helo(timeout=timeout)

    # Authentication #

    async def login(
        self,
        username: str,
        password: str,
        /,
        *,
        timeout: TimeoutType = Default.token,
    ) -> SMTPResponse:
        """
        Authenticate with AUTH PLAIN, the only mechanism used.

        :raises SMTPNotSupported: the server does not offer AUTH PLAIN
        :raises SMTPAuthenticationError: credentials rejected
        """
        await self._greet(timeout)

        if not self.supports_extension("auth"):
            raise SMTPNotSupported(
                "The SMTP AUTH extension is not supported by this server."
            )
        if "plain" not in self.server_auth_methods:
            offered = ", ".join(self.server_auth_methods) or "none"
            raise SMTPNotSupported(
                f"No suitable authentication method found. Server offers: {offered}"
            )

        reply = await self.auth_plain(username, password, timeout=timeout)
        self._authenticated = True
        self.state = SessionState.authenticated

        return reply

    async def auth_plain(
        self,
        username: str,
        password: str,
        /,
        *,
        timeout: TimeoutType = Default.token,
    ) -> SMTPResponse:
        """
        Send ``AUTH PLAIN`` with the credentials as the initial response::

            C: AUTH PLAIN AHRlc3QAdGVzdHBhc3M=
            S: 235 2.7.0 Authentication successful

        :raises SMTPAuthenticationError: anything but a 235
        """
        credentials = auth_plain_encode(
            username, password, identity=self.auth_identity
        )
        reply = await self.execute_command(
            b"AUTH", b"PLAIN", credentials, timeout=timeout
        )

        return _check_reply(
            reply, (SMTPStatus.auth_successful,), SMTPAuthenticationError
        )

    # Mail transaction #

    async def mail(
        self,
        sender: str,
        /,
        *,
        options: Iterable[str] = (),
        timeout: TimeoutType = Default.token,
    ) -> SMTPResponse:
        """
        ``MAIL FROM:<sender>``, opening a new transaction.

        :raises SMTPSenderRefused: sender rejected
        """
        await self._greet(timeout)

        reply = await self.execute_command(
            b"MAIL",
            b"FROM:" + quote_address(sender).encode("utf-8"),
            *[option.encode("ascii") for option in options],
            timeout=timeout,
        )
        _check_reply(reply, (SMTPStatus.completed,), SMTPSenderRefused, sender)
        self.state = SessionState.sender_set

        return reply

    async def rcpt(
        self, recipient: str, /, *, timeout: TimeoutType = Default.token
    ) -> SMTPResponse:
        """
        ``RCPT TO:<recipient>``, once per recipient after :meth:`mail`.

        :raises SMTPRecipientRefused: recipient rejected
        """
        reply = await self.execute_command(
            b"RCPT", b"TO:" + quote_address(recipient).encode("utf-8"), timeout=timeout
        )

        return _check_reply(
            reply,
            (SMTPStatus.completed, SMTPStatus.will_forward),
            SMTPRecipientRefused,
            recipient,
        )

    async def data(
        self, message: bytes, /, *, timeout: TimeoutType = Default.token
    ) -> SMTPResponse:
        """
        Send DATA, then ``message`` once the server answers 354.

        :raises SMTPDataError: DATA or the message refused
        :raises SMTPServerDisconnected: connection lost while sending
        """
        reply = await self.execute_command(b"DATA", timeout=timeout)
        _check_reply(reply, (SMTPStatus.start_input,), SMTPDataError)
        self.state = SessionState.data_opened

        if self.protocol is None:
            raise SMTPServerDisconnected("Connection lost")

        try:
            reply = await self.protocol.transmit_message(
                message, timeout=self._resolve_timeout(timeout)
            )
        except SMTPServerDisconnected:
            self.close()
            raise

        _check_reply(reply, (SMTPStatus.completed,), SMTPDataError)
        self.state = SessionState.data_written

        return reply

    async def rset(self, *, timeout: TimeoutType = Default.token) -> SMTPResponse:
        """
        Abort the current transaction so the session can send again.

        :raises SMTPResponseException: RSET refused
        """
        reply = await self.execute_command(b"RSET", timeout=timeout)
        _check_reply(reply, (SMTPStatus.completed,), SMTPResponseException)

        if self._authenticated:
            self.state = SessionState.authenticated
        else:
            self.state = SessionState.connected

        return reply

    async def quit(self, *, timeout: TimeoutType = Default.token) -> SMTPResponse:
        """
        Say goodbye and close the connection.

        :raises SMTPResponseException: anything but a 221
        """
        reply = await self.execute_command(b"QUIT", timeout=timeout)
        _check_reply(reply, (SMTPStatus.closing,), SMTPResponseException)
        self.close()

        return reply

    async def send_message(
        self,
        content: MessageContent,
        /,
        *,
        timeout: TimeoutType = Default.token,
    ) -> SMTPResponse:
        """
        Deliver ``content`` in one transaction: MAIL FROM, RCPT TO for each
        ``to`` then ``cc`` address, then DATA. Returns the reply to the data.

        The first refused recipient ends the transaction; later recipients
        are not tried and no data is sent. Call :meth:`rset` before reusing
        the session after a failure.

        :raises SMTPValidationError: content is missing mandatory fields
        :raises SMTPNotSupported: non-ASCII addresses without SMTPUTF8
        :raises SMTPSenderRefused: sender rejected
        :raises SMTPRecipientRefused: a recipient rejected
        :raises SMTPDataError: the message rejected
        """
        content.validate()

        try:
            await self._greet(timeout)

            options = self._mail_options(content)
            message = build_message(content)
            if self.supports_extension("size"):
                options.insert(0, f"SIZE={len(message)}")

            await self.mail(content.sender, options=options, timeout=timeout)
            for recipient in content.recipients:
                await self.rcpt(recipient, timeout=timeout)
            self.state = SessionState.recipients_accepted

            reply = await self.data(message, timeout=timeout)
        except SMTPException:
            self.state = SessionState.failed
            raise

        logger.debug(
            "message from %s accepted for %d recipient(s): %s",
            content.sender,
            len(content.recipients),
            reply,
        )

        return reply

    def _mail_options(self, content: MessageContent) -> list[str]:
        addresses = (content.sender, *content.recipients)
        if all(address.isascii() for address in addresses):
            return []

        if not self.supports_extension("smtputf8"):
            raise SMTPNotSupported(
                "An address containing non-ASCII characters was provided, but "
                "SMTPUTF8 is not supported by this server"
            )

        return ["SMTPUTF8"]
