"""
Pytest fixtures and config.
"""

import ssl
from collections.abc import Callable, Generator
from typing import Any

import hypothesis
import pytest
import trustme
from aiosmtpd.smtp import SMTP as SMTPD

from tlsmailer import SMTP, MessageContent, MessageSpec

from .smtpd import (
    RecordingHandler,
    SMTPDServerThread,
    TestSMTPD,
    build_authenticator,
)


# Select with --hypothesis-profile; the default profile is used otherwise.
hypothesis.settings.register_profile("dev", max_examples=10)
hypothesis.settings.register_profile(
    "ci", max_examples=100, suppress_health_check=[hypothesis.HealthCheck.too_slow]
)


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers", "smtpd_mocks(**methods): replace test server command handlers"
    )
    config.addinivalue_line(
        "markers", "smtpd_options(**options): configure the test server"
    )


def pytest_addoption(parser: Any) -> None:
    parser.addoption(
        "--bind-addr",
        action="store",
        default="127.0.0.1",
        help="address to bind on for network tests",
    )


# Session scoped static values #


@pytest.fixture(scope="session")
def bind_address(request: pytest.FixtureRequest) -> str:
    """Server side address for socket binding"""
    return str(request.config.getoption("--bind-addr"))


@pytest.fixture(scope="session")
def hostname(bind_address: str) -> str:
    return bind_address


@pytest.fixture(scope="session")
def sender_str() -> str:
    return "sender@example.com"


@pytest.fixture(scope="session")
def recipient_str() -> str:
    return "recipient@example.com"


@pytest.fixture(scope="session")
def auth_password() -> str:
    return "test-password"


@pytest.fixture(scope="session")
def cert_authority() -> trustme.CA:
    return trustme.CA()


@pytest.fixture(scope="session")
def valid_server_cert(cert_authority: trustme.CA, hostname: str) -> trustme.LeafCert:
    return cert_authority.issue_cert(hostname)


@pytest.fixture(scope="session")
def client_tls_context(cert_authority: trustme.CA) -> ssl.SSLContext:
    tls_context = ssl.create_default_context()
    cert_authority.configure_trust(tls_context)

    return tls_context


@pytest.fixture(scope="session")
def server_tls_context(valid_server_cert: trustme.LeafCert) -> ssl.SSLContext:
    tls_context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    valid_server_cert.configure_cert(tls_context)

    return tls_context


@pytest.fixture(scope="session")
def ca_cert_path(
    tmp_path_factory: pytest.TempPathFactory, cert_authority: trustme.CA
) -> str:
    tmp_path = tmp_path_factory.mktemp("cacert")

    cert_authority.cert_pem.write_to_path(tmp_path / "ca.pem")

    return str(tmp_path / "ca.pem")


# Messages #


@pytest.fixture
def message_content(sender_str: str, recipient_str: str) -> MessageContent:
    return MessageContent(
        sender=sender_str,
        to=[recipient_str],
        subject="A message",
        body="Hello",
    )


@pytest.fixture
def message_spec_factory(
    hostname: str,
    smtpd_server_port: int,
    sender_str: str,
    recipient_str: str,
    auth_password: str,
) -> Callable[..., MessageSpec]:
    def factory(**overrides: Any) -> MessageSpec:
        fields: dict[str, Any] = {
            "host": hostname,
            "port": smtpd_server_port,
            "sender": sender_str,
            "password": auth_password,
            "to": [recipient_str],
            "cc": [],
            "subject": "Test",
            "body": "Hello",
        }
        fields.update(overrides)

        return MessageSpec(**fields)

    return factory


# Server helpers and factories #


@pytest.fixture
def received_messages() -> list[bytes]:
    return []


@pytest.fixture
def received_commands() -> list[tuple[str, tuple[Any, ...]]]:
    return []


@pytest.fixture
def smtpd_options(request: pytest.FixtureRequest) -> dict[str, Any]:
    marker = request.node.get_closest_marker("smtpd_options")

    return dict(marker.kwargs) if marker else {}


@pytest.fixture
def smtpd_handler(
    received_messages: list[bytes],
    received_commands: list[tuple[str, tuple[Any, ...]]],
    smtpd_options: dict[str, Any],
) -> RecordingHandler:
    return RecordingHandler(
        received_messages,
        received_commands,
        rejected_recipients=smtpd_options.get("rejected_recipients", ()),
    )


@pytest.fixture
def smtpd_factory(
    request: pytest.FixtureRequest,
    monkeypatch: pytest.MonkeyPatch,
    hostname: str,
    smtpd_handler: RecordingHandler,
    smtpd_options: dict[str, Any],
    auth_password: str,
) -> Callable[[], SMTPD]:
    marker = request.node.get_closest_marker("smtpd_mocks")
    for handler_name, replacement in (marker.kwargs if marker else {}).items():
        monkeypatch.setattr(TestSMTPD, handler_name, replacement)

    authenticator = build_authenticator(auth_password)

    def factory() -> SMTPD:
        # The connection is TLS from the start, which aiosmtpd only tracks
        # for STARTTLS, so AUTH must be allowed without it.
        return TestSMTPD(
            smtpd_handler,
            hostname=hostname,
            enable_SMTPUTF8=smtpd_options.get("smtputf8", False),
            authenticator=authenticator,
            auth_require_tls=False,
        )

    return factory


@pytest.fixture
def smtpd_server(
    bind_address: str,
    server_tls_context: ssl.SSLContext,
    smtpd_factory: Callable[[], SMTPD],
) -> Generator[SMTPDServerThread, None, None]:
    server_thread = SMTPDServerThread(
        smtpd_factory, host=bind_address, tls_context=server_tls_context
    )
    server_thread.start()

    yield server_thread

    server_thread.stop()


# Running server ports #


@pytest.fixture
def smtpd_server_port(smtpd_server: SMTPDServerThread) -> int:
    return smtpd_server.port


# SMTP Clients #


@pytest.fixture
def smtp_client(
    hostname: str,
    smtpd_server_port: int,
    client_tls_context: ssl.SSLContext,
) -> SMTP:
    return SMTP(
        hostname=hostname,
        port=smtpd_server_port,
        timeout=1.0,
        tls_context=client_tls_context,
    )


@pytest.fixture
def auth_smtp_client(
    hostname: str,
    smtpd_server_port: int,
    client_tls_context: ssl.SSLContext,
    sender_str: str,
    auth_password: str,
) -> SMTP:
    return SMTP(
        hostname=hostname,
        port=smtpd_server_port,
        username=sender_str,
        password=auth_password,
        timeout=1.0,
        tls_context=client_tls_context,
    )
