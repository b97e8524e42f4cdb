"""
Message value objects and mandatory field validation.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Union

from .errors import SMTPValidationError


__all__ = ("MessageContent", "MessageSpec")


def _check_no_newlines(value: str, field_name: str) -> None:
    if "\r" in value or "\n" in value:
        raise SMTPValidationError(
            f"{field_name} contains prohibited newline characters",
            field_name,
        )


def _validate_addresses(
    addresses: Sequence[str], field_name: str, *, required: bool = False
) -> None:
    if required and not addresses:
        raise SMTPValidationError(
            f"At least one recipient is required in {field_name}",
            field_name,
        )
    for address in addresses:
        if not address:
            raise SMTPValidationError(f"Empty address in {field_name}", field_name)
        _check_no_newlines(address, field_name)


@dataclass(frozen=True)
class MessageContent:
    """
    The per-message half of a send: who it is from, who it goes to, and
    what it says. Holds no server details or credentials, so a single
    authenticated :class:`.smtp.SMTP` session can send any number of them.

    Recipient sequences are stored as tuples, in the order given.
    """

    sender: str
    to: Sequence[str]
    cc: Sequence[str] = ()
    subject: str = ""
    body: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "to", _as_tuple(self.to))
        object.__setattr__(self, "cc", _as_tuple(self.cc))

    @property
    def recipients(self) -> tuple[str, ...]:
        """
        Envelope recipients, ``to`` followed by ``cc``. Duplicates are kept.
        """
        return tuple(self.to) + tuple(self.cc)

    def validate(self) -> None:
        """
        :raises SMTPValidationError: on the first invalid field
        """
        if not self.sender:
            raise SMTPValidationError("Sender cannot be empty", "sender")
        _check_no_newlines(self.sender, "sender")
        _validate_addresses(self.to, "to", required=True)
        _validate_addresses(self.cc, "cc")
        if not self.subject:
            raise SMTPValidationError("Subject cannot be empty", "subject")
        if not self.body:
            raise SMTPValidationError("Body cannot be empty", "body")


@dataclass(frozen=True)
class MessageSpec:
    """
    Everything needed to deliver one email: server, credentials and content.

    Usage:

        >>> spec = MessageSpec(
        ...     host="smtp.example.com",
        ...     port=465,
        ...     sender="a@example.com",
        ...     password="secret",
        ...     to=["r@example.com"],
        ...     subject="Hi",
        ...     body="Hello",
        ... )
        >>> spec.address
        'smtp.example.com:465'

    Attributes:
        host: SMTP server hostname, also the expected TLS server name.
        port: Server port, as an int or a numeric string.
        sender: Login username and envelope/header From address.
        password: Password for AUTH PLAIN.
        to: Primary recipients; at least one.
        cc: Carbon-copy recipients; may be empty.
        subject: Subject text, any UTF-8.
        body: Plain text body, any UTF-8.
    """

    host: str
    port: Union[int, str]
    sender: str
    password: str
    to: Sequence[str]
    cc: Sequence[str] = ()
    subject: str = ""
    body: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "to", _as_tuple(self.to))
        object.__setattr__(self, "cc", _as_tuple(self.cc))

    def __repr__(self) -> str:
        return (
            f"MessageSpec(host={self.host!r}, port={self.port!r}, "
            f"sender={self.sender!r}, password='***', to={self.to!r}, "
            f"cc={self.cc!r}, subject={self.subject!r})"
        )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def port_number(self) -> int:
        """
        :raises SMTPValidationError: if the port is not a valid TCP port
        """
        return _parse_port(self.port)

    @property
    def content(self) -> MessageContent:
        return MessageContent(
            sender=self.sender,
            to=self.to,
            cc=self.cc,
            subject=self.subject,
            body=self.body,
        )

    def validate(self) -> None:
        """
        Check that all mandatory fields are set, stopping at the first
        problem found.

        :raises SMTPValidationError: names the offending field in ``.field``
        """
        if not self.sender:
            raise SMTPValidationError("Sender cannot be empty", "sender")
        if not self.password:
            raise SMTPValidationError("Password cannot be empty", "password")
        if not self.host:
            raise SMTPValidationError("Host cannot be empty", "host")
        if self.port is None or self.port == "":
            raise SMTPValidationError("Port cannot be empty", "port")
        _validate_addresses(self.to, "to", required=True)
        if not self.subject:
            raise SMTPValidationError("Subject cannot be empty", "subject")
        if not self.body:
            raise SMTPValidationError("Body cannot be empty", "body")

        _check_no_newlines(self.host, "host")
        _parse_port(self.port)
        # NUL separates the fields of the AUTH PLAIN response
        for field_name in ("sender", "password"):
            if "\0" in getattr(self, field_name):
                raise SMTPValidationError(
                    f"{field_name.capitalize()} cannot contain NUL characters",
                    field_name,
                )
        self.content.validate()


def _as_tuple(addresses: Union[str, Sequence[str], None]) -> tuple[str, ...]:
    if addresses is None:
        return ()
    if isinstance(addresses, str):
        return (addresses,)

    return tuple(addresses)


def _parse_port(port: Union[int, str]) -> int:
    try:
        port_number = int(port)
    except (TypeError, ValueError):
        raise SMTPValidationError(
            f"Port must be a number, got {port!r}", "port"
        ) from None

    if not 0 < port_number < 65536:
        raise SMTPValidationError(f"Port out of range: {port_number}", "port")

    return port_number
