"""
The client side of one SMTP connection, as an ``asyncio.Protocol``.

Replies are parsed as soon as their bytes arrive and queued until a caller
asks for one, so the server greeting is never lost even though it arrives
before anybody is waiting for it.
"""

import asyncio
import collections
import logging
import re
from typing import Callable, Optional

from .errors import (
    SMTPReadTimeoutError,
    SMTPResponseException,
    SMTPServerDisconnected,
    SMTPTimeoutError,
)
from .response import SMTPResponse
from .typing import SMTPStatus


__all__ = ("SMTPProtocol", "dot_stuff", "pop_reply")


logger = logging.getLogger(__name__)

# Longest reply line accepted from a server
MAX_REPLY_LINE = 8192
NEWLINE_REGEX = re.compile(rb"\r\n|\r|\n")


def dot_stuff(message: bytes) -> bytes:
    """
    Turn a message into the byte stream sent after a ``354`` reply.

    Every line ends with CRLF, lines starting with a period get a second one
    (RFC 5321 section 4.5.2), and the ``.`` end-of-data line is appended.

        >>> dot_stuff(b".hidden\\nline")
        b'..hidden\\r\\nline\\r\\n.\\r\\n'

    """
    lines = NEWLINE_REGEX.split(message)
    if lines[-1] == b"":
        lines.pop()

    stuffed = [b"." + line if line.startswith(b".") else line for line in lines]
    stuffed.append(b".")

    return b"\r\n".join(stuffed) + b"\r\n"


def pop_reply(buffer: bytearray) -> Optional[SMTPResponse]:
    """
    Remove the first complete reply from ``buffer`` and return it.

    Continuation lines (``250-...``) are joined with newlines. If the final
    line has not arrived yet, ``None`` is returned and the buffer is left as
    it was.

    :raises SMTPResponseException: a reply line is malformed or too long
    """
    texts = []
    position = 0

    while True:
        newline = buffer.find(b"\n", position)
        if newline == -1:
            if len(buffer) - position > MAX_REPLY_LINE:
                raise SMTPResponseException(
                    SMTPStatus.unrecognized_command, "Response too long"
                )
            return None

        line = bytes(buffer[position:newline]).rstrip(b"\r")
        position = newline + 1

        if len(line) > MAX_REPLY_LINE:
            raise SMTPResponseException(
                SMTPStatus.unrecognized_command, "Response too long"
            )
        if not line[:3].isdigit():
            raise SMTPResponseException(
                SMTPStatus.invalid_response,
                "Malformed SMTP response line: "
                + line.decode("utf-8", errors="replace"),
            )

        texts.append(line[4:].strip(b" \t"))
        if line[3:4] != b"-":
            break

    del buffer[:position]
    text = b"\n".join(texts).decode("utf-8", errors="surrogateescape")

    return SMTPResponse(int(line[:3]), text)


class SMTPProtocol(asyncio.Protocol):
    """
    Frames commands and hands back replies, one per command.

    A lost connection, an unexpected EOF or an unparseable reply is stored
    and raised to whoever reads next, after any replies that arrived first.
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        connection_lost_callback: Optional[Callable[[], None]] = None,
    ) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()
        self._connection_lost_callback = connection_lost_callback

        self._buffer = bytearray()
        self._replies: collections.deque[SMTPResponse] = collections.deque()
        self._failure: Optional[Exception] = None
        self._reply_ready = asyncio.Event()
        self._writable = asyncio.Event()
        self._writable.set()
        self._exchange_lock = asyncio.Lock()

        self.transport: Optional[asyncio.Transport] = None

    @property
    def is_connected(self) -> bool:
        return self.transport is not None and not self.transport.is_closing()

    # asyncio callbacks #

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        if not isinstance(transport, asyncio.Transport):
            raise TypeError(f"Expected a stream transport, got {transport!r}")

        self.transport = transport

    def data_received(self, data: bytes) -> None:
        self._buffer.extend(data)

        try:
            reply = pop_reply(self._buffer)
            while reply is not None:
                self._replies.append(reply)
                reply = pop_reply(self._buffer)
        except SMTPResponseException as exc:
            self._buffer.clear()
            self._fail(exc)

        if self._replies:
            self._reply_ready.set()

    def eof_received(self) -> bool:
        self._fail(SMTPServerDisconnected("Unexpected EOF received"))

        # Let the transport close itself
        return False

    def connection_lost(self, exc: Optional[Exception]) -> None:
        disconnected = SMTPServerDisconnected("Connection lost")
        disconnected.__cause__ = exc
        self._fail(disconnected)

        self.transport = None
        # Release a writer stuck waiting on a full buffer
        self._writable.set()

        if self._connection_lost_callback is not None:
            self._connection_lost_callback()

    def pause_writing(self) -> None:
        self._writable.clear()

    def resume_writing(self) -> None:
        self._writable.set()

    def _fail(self, exc: Exception) -> None:
        # The first failure wins; later ones are consequences of it
        if self._failure is None:
            self._failure = exc
        self._reply_ready.set()

    # Reading and writing #

    async def read_response(self, timeout: Optional[float] = None) -> SMTPResponse:
        """
        Wait for the next reply from the server.

        :raises SMTPReadTimeoutError: nothing arrived within ``timeout``
        :raises SMTPServerDisconnected: the connection is gone
        """
        if self.transport is None and not self._replies and self._failure is None:
            raise SMTPServerDisconnected("Server not connected")

        try:
            await asyncio.wait_for(self._reply_ready.wait(), timeout)
        except asyncio.TimeoutError as exc:
            raise SMTPReadTimeoutError("Timed out waiting for server response") from exc

        if not self._replies:
            assert self._failure is not None
            raise self._failure

        reply = self._replies.popleft()
        if not self._replies and self._failure is None:
            self._reply_ready.clear()

        logger.debug("reply: %s", reply)

        return reply

    async def _write(self, data: bytes) -> None:
        if not self.is_connected:
            raise SMTPServerDisconnected("Connection lost")

        assert self.transport is not None
        self.transport.write(data)
        await self._writable.wait()

        if self.transport is None:
            raise SMTPServerDisconnected("Connection lost while writing")

    def _discard_unread(self) -> None:
        # A reply nobody waited for, e.g. one that arrived after a timeout,
        # must not be taken as the answer to the next command.
        if self._replies:
            logger.debug("discarding unread replies: %s", list(self._replies))
            self._replies.clear()
            if self._failure is None:
                self._reply_ready.clear()

    async def execute_command(
        self, *args: bytes, timeout: Optional[float] = None
    ) -> SMTPResponse:
        """
        Write one command line built from ``args`` and return its reply.
        """
        line = b" ".join(args) + b"\r\n"
        if args[:1] == (b"AUTH",):
            logger.debug("command: %r", b"AUTH ...")
        else:
            logger.debug("command: %r", line)

        async with self._exchange_lock:
            self._discard_unread()
            await self._write(line)

            return await self.read_response(timeout=timeout)

    async def transmit_message(
        self, message: bytes, timeout: Optional[float] = None
    ) -> SMTPResponse:
        """
        Send message data after DATA was accepted, and return the reply to
        the end-of-data line. ``timeout`` bounds the write and the reply
        separately.

        :raises SMTPTimeoutError: the server stopped reading the data
        """
        payload = dot_stuff(message)
        logger.debug("sending %d bytes of message data", len(payload))

        async with self._exchange_lock:
            self._discard_unread()
            try:
                await asyncio.wait_for(self._write(payload), timeout)
            except asyncio.TimeoutError as exc:
                raise SMTPTimeoutError("Timed out writing message data") from exc

            return await self.read_response(timeout=timeout)
