"""
Main public API.
"""

import asyncio
import logging
import ssl
from typing import Optional

from .models import MessageSpec
from .response import SMTPResponse
from .smtp import DEFAULT_TIMEOUT, SMTP


__all__ = ("send", "send_async")

logger = logging.getLogger(__name__)


async def send_async(
    spec: MessageSpec,
    /,
    *,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    allow_insecure_tls: bool = False,
    cert_bundle: Optional[str] = None,
    tls_context: Optional[ssl.SSLContext] = None,
    local_hostname: Optional[str] = None,
) -> SMTPResponse:
    """
    Deliver the email described by ``spec`` over implicit TLS.

    ``spec`` is validated before any network activity. The session then
    connects, authenticates as ``spec.sender`` with AUTH PLAIN, registers the
    sender and every recipient (``to`` then ``cc``) and sends the message.
    QUIT is always attempted at the end; a failure there is logged, never
    raised, and does not change the outcome.

    :param spec: server, credentials and message content

    :keyword timeout: Seconds allowed for each network operation. ``None``
        waits forever.
    :keyword allow_insecure_tls: Skip server certificate verification.
        Only for servers with self-signed certificates.
    :keyword cert_bundle: Path to a CA bundle to verify the server against.
    :keyword tls_context: An existing :py:class:`ssl.SSLContext`, used as is.
    :keyword local_hostname: Name sent with EHLO. Defaults to the local FQDN.

    :raises SMTPValidationError: a mandatory field is missing or invalid
    :raises SMTPConnectError: DNS, TCP or TLS failure, or a bad greeting
    :raises SMTPTimeoutError: a network operation took too long
    :raises SMTPAuthenticationError: credentials rejected
    :raises SMTPNotSupported: server lacks AUTH PLAIN (or SMTPUTF8, when needed)
    :raises SMTPSenderRefused: sender rejected
    :raises SMTPRecipientRefused: a recipient rejected
    :raises SMTPDataError: message rejected

    Example:

    >>> spec = MessageSpec(
    ...     host="smtp.example.com",
    ...     port=465,
    ...     sender="me@example.com",
    ...     password="secret",
    ...     to=["you@example.com"],
    ...     subject="Hello",
    ...     body="Sent via tlsmailer",
    ... )
    >>> asyncio.run(send_async(spec))
    (250, OK)
    """
    spec.validate()

    client = SMTP(
        hostname=spec.host,
        port=spec.port_number,
        username=spec.sender,
        password=spec.password,
        local_hostname=local_hostname,
        timeout=timeout,
        allow_insecure_tls=allow_insecure_tls,
        cert_bundle=cert_bundle,
        tls_context=tls_context,
    )

    logger.debug(
        "sending message to %d recipient(s) via %s",
        len(spec.content.recipients),
        spec.address,
    )

    async with client:
        response = await client.send_message(spec.content)

    return response


def send(
    spec: MessageSpec,
    /,
    *,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    allow_insecure_tls: bool = False,
    cert_bundle: Optional[str] = None,
    tls_context: Optional[ssl.SSLContext] = None,
    local_hostname: Optional[str] = None,
) -> SMTPResponse:
    """
    Synchronous version of :func:`send_async`, for callers without a
    running event loop. Arguments and errors are the same.
    """
    return asyncio.run(
        send_async(
            spec,
            timeout=timeout,
            allow_insecure_tls=allow_insecure_tls,
            cert_bundle=cert_bundle,
            tls_context=tls_context,
            local_hostname=local_hostname,
        )
    )
