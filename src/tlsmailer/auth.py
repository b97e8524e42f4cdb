"""
AUTH PLAIN (RFC 4616) encoding.
"""

import base64
from typing import Union


__all__ = ("auth_plain_encode",)


def _ensure_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)

    return value.encode("utf-8")


def auth_plain_encode(
    username: Union[str, bytes],
    password: Union[str, bytes],
    /,
    *,
    identity: Union[str, bytes] = b"",
) -> bytes:
    """
    Build the base64 initial response for PLAIN:
    ``authzid NUL authcid NUL passwd``.

    ``identity`` is the authorization identity; empty means "act as the
    authenticated user", which is what nearly every server expects.

        >>> auth_plain_encode("test", "testpass")
        b'AHRlc3QAdGVzdHBhc3M='

    """
    identity_bytes = _ensure_bytes(identity)
    username_bytes = _ensure_bytes(username)
    password_bytes = _ensure_bytes(password)

    if b"\0" in identity_bytes + username_bytes + password_bytes:
        raise ValueError("PLAIN credentials may not contain NUL characters")

    message = identity_bytes + b"\0" + username_bytes + b"\0" + password_bytes

    return base64.b64encode(message)
