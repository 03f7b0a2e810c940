"""Welcome email rendering and SMTP delivery.

Emails are rendered from Jinja2 templates in `examhub/templates` and sent
over SMTP using the configured credentials. Delivery is best-effort:
`deliver_welcome_emails` runs after the HTTP response and only logs
failures. The plaintext password in a `WelcomeNotice` is used for the
message body and never logged.
"""

import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from pathlib import Path
from typing import Iterable, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import Settings

logger = logging.getLogger("examhub.mailer")
TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


@dataclass
class WelcomeNotice:
    to: str
    username: str
    password: str = field(repr=False)


class Mailer:
    """Sends welcome emails for newly created accounts."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(['html']),
        )

    def render_welcome(self, notice: WelcomeNotice) -> Tuple[str, str, str]:
        """Return `(subject, text_body, html_body)` for `notice`."""
        context = {
            'app_name': self.settings.APP_NAME,
            'app_url': self.settings.APP_URL,
            'username': notice.username,
            'email': notice.to,
            'password': notice.password,
        }
        subject = f"Welcome to {self.settings.APP_NAME}!"
        text = self._env.get_template('welcome.txt').render(**context)
        html = self._env.get_template('welcome.html').render(**context)
        return subject, text, html

    def build_message(self, notice: WelcomeNotice) -> EmailMessage:
        subject, text, html = self.render_welcome(notice)
        msg = EmailMessage()
        msg['Subject'] = subject
        msg['From'] = f'"{self.settings.APP_NAME} Admin" <{self.settings.EMAIL_FROM}>'
        msg['To'] = notice.to
        msg.set_content(text)
        msg.add_alternative(html, subtype='html')
        return msg

    def send_welcome(self, notice: WelcomeNotice) -> bool:
        """Deliver one welcome email; returns False when delivery is disabled."""
        if not self.settings.email_enabled:
            logger.warning("email delivery disabled (SMTP_HOST unset); welcome email to %s not sent", notice.to)
            return False
        msg = self.build_message(notice)
        with smtplib.SMTP(self.settings.SMTP_HOST, self.settings.SMTP_PORT, timeout=30) as smtp:
            if self.settings.SMTP_STARTTLS:
                smtp.starttls()
            if self.settings.SMTP_USER:
                smtp.login(self.settings.SMTP_USER, self.settings.SMTP_PASSWORD)
            smtp.send_message(msg)
        logger.info("welcome email sent to %s", notice.to)
        return True


def deliver_welcome_emails(mailer: Mailer, notices: Iterable[WelcomeNotice]) -> None:
    """Send every notice, logging (never raising) individual failures."""
    for notice in notices:
        try:
            mailer.send_welcome(notice)
        except Exception:
            logger.exception("Failed to send welcome email to %s", notice.to)
