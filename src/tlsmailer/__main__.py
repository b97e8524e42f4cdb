import getpass
import logging
import sys

from tlsmailer.api import send
from tlsmailer.errors import SMTPException
from tlsmailer.models import MessageSpec
from tlsmailer.smtp import SMTP_TLS_PORT


logger = logging.getLogger("tlsmailer")


def _split_addresses(raw_addresses: str) -> list[str]:
    return [address.strip() for address in raw_addresses.split(",") if address.strip()]


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    raw_hostname = input("SMTP server hostname: ")  # nosec
    raw_port = input(f"SMTP server port [{SMTP_TLS_PORT}]: ")  # nosec
    raw_sender = input("From: ")  # nosec
    password = getpass.getpass("Password: ")
    raw_to = input("To (comma separated): ")  # nosec
    raw_cc = input("CC (comma separated): ")  # nosec
    subject = input("Subject: ")  # nosec

    lines: list[str] = []
    print("Enter message, end with ^D:")
    while True:
        try:
            lines.append(input())  # nosec
        except EOFError:
            break

    spec = MessageSpec(
        host=raw_hostname.strip(),
        port=raw_port.strip() or SMTP_TLS_PORT,
        sender=raw_sender.strip(),
        password=password,
        to=_split_addresses(raw_to),
        cc=_split_addresses(raw_cc),
        subject=subject,
        body="\n".join(lines),
    )

    try:
        response = send(spec)
    except SMTPException as exc:
        logger.error("Mail send failure: %s", exc)
        return 1

    logger.info("Mail sent successfully: %s", response)
    return 0


if __name__ == "__main__":
    sys.exit(main())
