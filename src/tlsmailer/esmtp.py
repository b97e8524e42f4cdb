"""
Reading the extension list out of an EHLO reply.
"""


__all__ = ("parse_esmtp_extensions",)


OLDSTYLE_AUTH_PREFIX = "auth="


def _add_mechanisms(mechanisms: list[str], params: str) -> None:
    for mechanism in params.lower().split():
        if mechanism not in mechanisms:
            mechanisms.append(mechanism)


def parse_esmtp_extensions(message: str) -> tuple[dict[str, str], list[str]]:
    """
    Split the text of an EHLO reply into ``{keyword: parameters}`` and the
    AUTH mechanisms offered, keywords and mechanisms lowercased.

    The first line is the server's greeting and is skipped::

        smtp.example.com greets client.example.com
        SIZE 35882577
        AUTH LOGIN PLAIN
        AUTH=LOGIN PLAIN
        SMTPUTF8

    ``AUTH=`` lines are the pre-standard form; they add mechanisms but
    never replace the parameters of a regular ``AUTH`` line.
    """
    extensions: dict[str, str] = {}
    mechanisms: list[str] = []

    for line in message.splitlines()[1:]:
        line = line.strip()
        if line[: len(OLDSTYLE_AUTH_PREFIX)].lower() == OLDSTYLE_AUTH_PREFIX:
            params = line[len(OLDSTYLE_AUTH_PREFIX) :].strip()
            extensions.setdefault("auth", params)
            _add_mechanisms(mechanisms, params)
            continue

        keyword, _, params = line.partition(" ")
        if not keyword[:1].isalnum():
            continue
        keyword = keyword.lower()
        extensions[keyword] = params.strip()
        if keyword == "auth":
            _add_mechanisms(mechanisms, params)

    return extensions, mechanisms
