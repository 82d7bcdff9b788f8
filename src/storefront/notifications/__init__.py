"""Mailer registry.

Provides singleton access to the mailer used for customer emails. Uses the
fake mailer by default; a real provider adapter can be swapped in with
``set_mailer()``.
"""

from storefront.notifications.fake_mailer import FakeMailer
from storefront.notifications.port import MailerPort

_current_mailer: MailerPort | None = None


def get_mailer() -> MailerPort:
    global _current_mailer
    if _current_mailer is None:
        _current_mailer = FakeMailer()
    return _current_mailer


def set_mailer(mailer: MailerPort) -> None:
    """Override the active mailer (useful for tests)."""
    global _current_mailer
    _current_mailer = mailer


def reset_mailer() -> None:
    global _current_mailer
    _current_mailer = None
