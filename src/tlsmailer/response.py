"""
The reply type returned by every SMTP command.
"""
from typing import NamedTuple


__all__ = ("SMTPResponse",)


class SMTPResponse(NamedTuple):
    """
    A server reply: the three digit ``code`` and its text. The lines of a
    multi-line reply are joined with ``\\n``.

        >>> reply = SMTPResponse(235, "Authentication successful")
        >>> reply.code, reply[1]
        (235, 'Authentication successful')
        >>> print(reply)
        235 Authentication successful
    """

    code: int
    message: str

    def __repr__(self) -> str:
        return f"({self.code}, {self.message})"

    def __str__(self) -> str:
        return f"{self.code} {self.message}"

    @property
    def is_positive(self) -> bool:
        """
        2xx (done) and 3xx (send more) replies.
        """
        return self.code // 100 in (2, 3)
