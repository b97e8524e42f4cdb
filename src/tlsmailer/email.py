"""
Message and address formatting functions.

Builds the DATA payload for a plain text UTF-8 message: a fixed set of
headers, a blank line, then the base64 encoded body.
"""

import base64
import email.utils
from typing import Optional

from .models import MessageContent


__all__ = (
    "build_headers",
    "build_message",
    "encode_body",
    "encode_subject",
    "fold_header",
    "parse_address",
    "quote_address",
)


# RFC 2047: an encoded-word may not be more than 75 characters long.
MAX_ENCODED_WORD_LENGTH = 75
ENCODED_WORD_PREFIX = "=?utf-8?b?"
ENCODED_WORD_SUFFIX = "?="
# Raw bytes per word; base64 turns every 3 bytes into 4 characters.
MAX_ENCODED_WORD_BYTES = (
    (MAX_ENCODED_WORD_LENGTH - len(ENCODED_WORD_PREFIX) - len(ENCODED_WORD_SUFFIX))
    // 4
    * 3
)
# RFC 2045 limit for base64 lines.
BASE64_LINE_LENGTH = 76
# RFC 5322 section 2.1.1 recommended line length; folding keeps header lines
# near it and always under the 998 octet hard limit.
MAX_HEADER_LINE_LENGTH = 78
RECIPIENT_SEPARATOR = ";"


def parse_address(address: str) -> str:
    """
    Parse an email address, falling back to the raw string given.
    """
    _, parsed_address = email.utils.parseaddr(address)

    return parsed_address or address.strip()


def quote_address(address: str) -> str:
    """
    Quote a subset of the email addresses defined by RFC 821.
    """
    parsed_address = parse_address(address)
    return f"<{parsed_address}>"


def _split_utf8(text: str, max_bytes: int) -> list[str]:
    """
    Split text into chunks whose UTF-8 encoding fits in ``max_bytes``,
    without splitting a character.
    """
    chunks: list[str] = []
    chunk = ""
    chunk_size = 0
    for char in text:
        char_size = len(char.encode("utf-8"))
        if chunk and chunk_size + char_size > max_bytes:
            chunks.append(chunk)
            chunk = ""
            chunk_size = 0
        chunk += char
        chunk_size += char_size

    if chunk:
        chunks.append(chunk)

    return chunks


def encode_subject(subject: str) -> str:
    """
    Encode a subject as one or more RFC 2047 "B" encoded-words.

    Long subjects become several encoded-words separated by a space, which
    decoders join back together without the space:

        >>> encode_subject("Hi")
        '=?utf-8?b?SGk=?='

    """
    words = [
        ENCODED_WORD_PREFIX
        + base64.b64encode(chunk.encode("utf-8")).decode("ascii")
        + ENCODED_WORD_SUFFIX
        for chunk in _split_utf8(subject, MAX_ENCODED_WORD_BYTES)
    ]

    return " ".join(words)


def encode_body(body: str, line_length: Optional[int] = BASE64_LINE_LENGTH) -> str:
    """
    Base64 encode the UTF-8 bytes of ``body``, wrapped at ``line_length``
    characters with CRLF. Pass ``None`` or ``0`` for a single line.
    """
    encoded = base64.b64encode(body.encode("utf-8")).decode("ascii")
    if not line_length:
        return encoded

    return "\r\n".join(
        encoded[index : index + line_length]
        for index in range(0, len(encoded), line_length)
    )


def build_headers(content: MessageContent) -> list[tuple[str, str]]:
    """
    Return the message headers as (name, value) pairs, in the order they are
    written. ``CC`` is left out when there are no CC recipients.
    """
    headers = [
        ("From", content.sender),
        ("To", RECIPIENT_SEPARATOR.join(content.to)),
    ]
    if content.cc:
        headers.append(("CC", RECIPIENT_SEPARATOR.join(content.cc)))
    headers.extend(
        [
            ("Subject", encode_subject(content.subject)),
            ("MIME-Version", "1.0"),
            ("Content-Type", 'text/plain; charset="utf-8"'),
            ("Content-Transfer-Encoding", "base64"),
        ]
    )

    return headers


def fold_header(name: str, value: str, separator: str = " ") -> str:
    """
    Render ``name: value``, breaking it into CRLF + space continuation lines
    where it would pass :data:`MAX_HEADER_LINE_LENGTH`.

    Breaks only happen at ``separator``. A whitespace separator is replaced
    by the fold; any other separator stays at the end of the broken line.
    Short headers come back unchanged:

        >>> fold_header("To", "a@example.com;b@example.com", ";")
        'To: a@example.com;b@example.com'

    """
    pieces = value.split(separator)
    lines = [f"{name}: {pieces[0]}"]
    for piece in pieces[1:]:
        if len(lines[-1]) + len(separator) + len(piece) <= MAX_HEADER_LINE_LENGTH:
            lines[-1] += separator + piece
        elif separator.isspace():
            lines.append(" " + piece)
        else:
            lines[-1] += separator
            lines.append(" " + piece)

    return "\r\n".join(lines)


def build_message(
    content: MessageContent,
    /,
    *,
    line_length: Optional[int] = BASE64_LINE_LENGTH,
) -> bytes:
    """
    Assemble the full DATA payload for ``content``.

    Header lines are ``Name: value`` terminated by CRLF, folded when long,
    followed by an empty line and the encoded body. Dot-stuffing and the
    end-of-data marker are added by the protocol when the payload is sent.
    """
    lines: list[str] = []
    for name, value in build_headers(content):
        separator = RECIPIENT_SEPARATOR if name in ("To", "CC") else " "
        lines.append(fold_header(name, value, separator) + "\r\n")
    lines.append("\r\n")
    lines.append(encode_body(content.body, line_length=line_length))

    return "".join(lines).encode("utf-8")
