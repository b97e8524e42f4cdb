import enum


__all__ = ("Default", "SessionState", "SMTPStatus")


class Default(enum.Enum):
    """
    Used for type hinting kwarg defaults.
    """

    token = 0


@enum.unique
class SMTPStatus(enum.IntEnum):
    """
    Defines SMTP statuses for code readability.

    See also: http://www.greenend.org.uk/rjk/tech/smtpreplies.html
    """

    invalid_response = -1
    ready = 220
    closing = 221
    auth_successful = 235
    completed = 250
    will_forward = 251
    auth_continue = 334
    start_input = 354
    domain_unavailable = 421
    mailbox_unavailable = 450
    unrecognized_command = 500
    unrecognized_parameters = 501
    command_not_implemented = 502
    bad_command_sequence = 503
    auth_failed = 535
    mailbox_does_not_exist = 550
    transaction_failed = 554


@enum.unique
class SessionState(enum.Enum):
    """
    Progress of a single mail transaction over one connection.

    States only move forward; any error moves the session to ``failed``.
    """

    disconnected = "disconnected"
    connected = "connected"
    authenticated = "authenticated"
    sender_set = "sender_set"
    recipients_accepted = "recipients_accepted"
    data_opened = "data_opened"
    data_written = "data_written"
    closed = "closed"
    failed = "failed"
