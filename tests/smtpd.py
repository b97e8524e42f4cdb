"""
Implements handlers required on top of aiosmtpd for testing.
"""

import asyncio
import socket
import ssl
import threading
from collections.abc import Callable, Iterable
from typing import Any, Optional

from aiosmtpd.handlers import Message as MessageHandler
from aiosmtpd.smtp import SMTP as SMTPD
from aiosmtpd.smtp import AuthResult, Envelope, LoginPassword, Session

from tlsmailer import SMTPStatus


class RecordingHandler(MessageHandler):
    """
    Keeps every command seen and the raw content of every message accepted.
    Recipients in ``rejected_recipients`` are refused with a 550.
    """

    def __init__(
        self,
        messages_list: list[bytes],
        commands_list: list[tuple[str, tuple[Any, ...]]],
        rejected_recipients: Iterable[str] = (),
    ):
        self.messages = messages_list
        self.commands = commands_list
        self.rejected_recipients = set(rejected_recipients)
        super().__init__()

    def record_command(self, command: str, *args: Any) -> None:
        self.commands.append((command, tuple(args)))

    def handle_message(self, message: Any) -> None:
        pass

    async def handle_RCPT(
        self,
        server: SMTPD,
        session: Session,
        envelope: Envelope,
        address: str,
        rcpt_options: list[str],
    ) -> str:
        if address in self.rejected_recipients:
            return "550 5.1.1 Recipient address rejected"

        envelope.rcpt_tos.append(address)
        return "250 OK"

    async def handle_DATA(
        self, server: SMTPD, session: Session, envelope: Envelope
    ) -> str:
        content = envelope.content
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.messages.append(bytes(content))

        return await super().handle_DATA(server, session, envelope)


class TestSMTPD(SMTPD):
    async def _call_handler_hook(self, command: str, *args: Any) -> Any:
        self.event_handler.record_command(command, *args)
        return await super()._call_handler_hook(command, *args)


def build_authenticator(password: str) -> Callable[..., AuthResult]:
    """
    Accept any login name, as long as the password matches.
    """

    def authenticator(
        server: SMTPD,
        session: Session,
        envelope: Envelope,
        mechanism: str,
        auth_data: Any,
    ) -> AuthResult:
        if (
            isinstance(auth_data, LoginPassword)
            and auth_data.password == password.encode("utf-8")
        ):
            return AuthResult(success=True)

        # Not handled, so the server sends the 535 itself
        return AuthResult(success=False, handled=False)

    return authenticator


class SMTPDServerThread(threading.Thread):
    """
    Runs an implicit TLS SMTP server on its own event loop, so that blocking
    clients can be tested from the main thread.
    """

    def __init__(
        self,
        factory: Callable[[], SMTPD],
        host: str,
        tls_context: Optional[ssl.SSLContext],
    ) -> None:
        super().__init__(daemon=True)
        self.factory = factory
        self.host = host
        self.tls_context = tls_context
        self.loop = asyncio.new_event_loop()
        self.server: Optional[asyncio.AbstractServer] = None
        self.port = 0
        self._ready = threading.Event()
        self._startup_error: Optional[BaseException] = None

    def run(self) -> None:
        asyncio.set_event_loop(self.loop)
        try:
            self.server = self.loop.run_until_complete(
                self.loop.create_server(
                    self.factory,
                    host=self.host,
                    port=0,
                    family=socket.AF_INET,
                    ssl=self.tls_context,
                )
            )
        except Exception as exc:
            self._startup_error = exc
            self._ready.set()
            return

        self.port = self.server.sockets[0].getsockname()[1]
        self._ready.set()

        try:
            self.loop.run_forever()
        finally:
            self.loop.close()

    def start(self) -> None:
        super().start()
        self._ready.wait(timeout=5.0)
        if self._startup_error is not None:
            raise self._startup_error

    async def _shutdown(self) -> None:
        if self.server is not None:
            self.server.close()

        tasks = [
            task for task in asyncio.all_tasks() if task is not asyncio.current_task()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def stop(self) -> None:
        if self.loop.is_running():
            future = asyncio.run_coroutine_threadsafe(self._shutdown(), self.loop)
            future.result(timeout=5.0)
            self.loop.call_soon_threadsafe(self.loop.stop)
        self.join(timeout=5.0)


async def mock_response_delayed_ok(smtpd: SMTPD, *args: Any, **kwargs: Any) -> None:
    await asyncio.sleep(1.0)
    await smtpd.push("250 all done")


async def mock_response_unavailable(smtpd: SMTPD, *args: Any, **kwargs: Any) -> None:
    await smtpd.push("421 retry in 5 minutes")
    smtpd.transport.close()


async def mock_response_error_disconnect(
    smtpd: SMTPD, *args: Any, **kwargs: Any
) -> None:
    await smtpd.push("501 error")
    smtpd.transport.close()


async def mock_response_start_data_disconnect(
    smtpd: SMTPD, *args: Any, **kwargs: Any
) -> None:
    await smtpd.push("354 ok")
    smtpd.transport.close()


async def mock_response_ehlo_minimal(smtpd: SMTPD, *args: Any, **kwargs: Any) -> None:
    if args and args[0]:
        smtpd.session.host_name = args[0]

    await smtpd.push("250 HELP")


async def mock_response_ehlo_auth_login_only(
    smtpd: SMTPD, *args: Any, **kwargs: Any
) -> None:
    if args and args[0]:
        smtpd.session.host_name = args[0]

    await smtpd.push("250-localhost\r\n250-AUTH LOGIN\r\n250 HELP")


async def mock_response_mailbox_unavailable(
    smtpd: SMTPD, *args: Any, **kwargs: Any
) -> None:
    await smtpd.push(f"{SMTPStatus.mailbox_unavailable} error")


async def mock_response_unrecognized_command(
    smtpd: SMTPD, *args: Any, **kwargs: Any
) -> None:
    await smtpd.push(f"{SMTPStatus.unrecognized_command} error")


async def mock_response_rejected_greeting(
    smtpd: SMTPD, *args: Any, **kwargs: Any
) -> None:
    await smtpd.push("554 no SMTP service here")
    smtpd.transport.close()
