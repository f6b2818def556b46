"""
Email composition and delivery for contact form submissions.

Each successful submission produces two messages sent over one SMTP session
(implicit TLS):
1. Notification to the site operator (Reply-To set to the sender)
2. Confirmation to the sender

Both sends are one logical delivery: if the confirmation fails after the
notification went out, the delivery is still reported as failed.
"""

import logging
import os
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid, parseaddr
from typing import List, Optional

from domain.errors import ConfigurationError, SmtpConnectionError, SmtpSendError
from domain.models import DeliveryReceipt, MailMessage, Submission
from services import templates

logger = logging.getLogger(__name__)

# Required settings, in the order they are reported when missing
REQUIRED_SETTINGS = (
    'SMTP_HOST',
    'SMTP_PORT',
    'SMTP_USER',
    'SMTP_PASS',
    'FROM_EMAIL',
    'TO_EMAIL',
)

DEFAULT_SMTP_TIMEOUT = 10

NOTIFICATION_TEMPLATE = 'notification.html'
CONFIRMATION_TEMPLATE = 'confirmation.html'
CONFIRMATION_SUBJECT = 'Thank you for your message'


def _header_safe(value: str) -> str:
    """Collapse line breaks so user input cannot inject headers."""
    return ' '.join(value.splitlines()).strip()


@dataclass(frozen=True)
class MailSettings:
    """
    SMTP relay settings.

    Attributes:
        host: Relay hostname (SMTP_HOST)
        port: Relay port for implicit TLS, usually 465 (SMTP_PORT)
        user: Login user (SMTP_USER)
        password: Login credential (SMTP_PASS)
        from_address: Sender of both messages (FROM_EMAIL)
        to_address: Operator mailbox receiving notifications (TO_EMAIL)
        timeout: Socket timeout in seconds (SMTP_TIMEOUT)
        invalid: Names of settings that are present but unusable
    """
    host: Optional[str]
    port: Optional[int]
    user: Optional[str]
    password: Optional[str]
    from_address: Optional[str]
    to_address: Optional[str]
    timeout: float = DEFAULT_SMTP_TIMEOUT
    invalid: tuple = ()

    @classmethod
    def from_env(cls) -> 'MailSettings':
        """Read settings from environment variables (empty values count as unset)."""
        invalid = []

        raw_port = os.environ.get('SMTP_PORT') or None
        port = None
        if raw_port is not None:
            try:
                port = int(raw_port)
            except ValueError:
                invalid.append('SMTP_PORT')

        try:
            timeout = float(os.environ.get('SMTP_TIMEOUT', DEFAULT_SMTP_TIMEOUT))
        except ValueError:
            invalid.append('SMTP_TIMEOUT')
            timeout = DEFAULT_SMTP_TIMEOUT

        return cls(
            host=os.environ.get('SMTP_HOST') or None,
            port=port,
            user=os.environ.get('SMTP_USER') or None,
            password=os.environ.get('SMTP_PASS') or None,
            from_address=os.environ.get('FROM_EMAIL') or None,
            to_address=os.environ.get('TO_EMAIL') or None,
            timeout=timeout,
            invalid=tuple(invalid),
        )

    def missing_keys(self) -> List[str]:
        """Names of required settings that are absent, in declaration order."""
        values = (
            self.host,
            self.port if 'SMTP_PORT' not in self.invalid else 'invalid',
            self.user,
            self.password,
            self.from_address,
            self.to_address,
        )
        return [key for key, value in zip(REQUIRED_SETTINGS, values) if not value]

    @property
    def is_complete(self) -> bool:
        return not self.missing_keys() and not self.invalid

    def presence(self) -> dict:
        """Which required settings are set, safe to log."""
        missing = set(self.missing_keys())
        return {key: key not in missing for key in REQUIRED_SETTINGS}


def build_mime_message(mail: MailMessage) -> EmailMessage:
    """
    Convert a MailMessage into an HTML EmailMessage with a fresh Message-ID.
    """
    _, sender = parseaddr(mail.from_address)
    domain = sender.rpartition('@')[2] or None

    message = EmailMessage()
    message['From'] = mail.from_address
    message['To'] = mail.to_address
    message['Subject'] = mail.subject
    message['Message-ID'] = make_msgid(domain=domain)
    if mail.reply_to:
        message['Reply-To'] = mail.reply_to
    message.set_content(mail.html, subtype='html')
    return message


class Notifier:
    """
    Sends the operator notification and the sender confirmation.

    Settings are read from the environment on every call unless given
    explicitly, so a misconfigured deployment surfaces as a pipeline error
    instead of an import failure.
    """

    def __init__(self, settings: Optional[MailSettings] = None, site_url: Optional[str] = None):
        self._settings = settings
        self._site_url = site_url

    @property
    def settings(self) -> MailSettings:
        return self._settings if self._settings is not None else MailSettings.from_env()

    @property
    def site_url(self) -> Optional[str]:
        return self._site_url if self._site_url is not None else os.environ.get('SITE_URL') or None

    def check_configuration(self) -> MailSettings:
        """
        Verify all six required settings are present.

        Returns:
            MailSettings: The complete settings

        Raises:
            ConfigurationError: Naming every missing (or invalid) setting
        """
        settings = self.settings
        logger.debug(f"Mail configuration check: {settings.presence()}")

        missing = settings.missing_keys()
        if missing or settings.invalid:
            details = []
            if missing:
                details.append(f"Missing configuration: {', '.join(missing)}")
            if settings.invalid:
                details.append(f"Invalid configuration: {', '.join(settings.invalid)}")
            logger.error('; '.join(details))
            raise ConfigurationError(
                list(missing) + [key for key in settings.invalid if key not in missing],
                details='; '.join(details)
            )

        return settings

    def compose_notification(self, submission: Submission) -> MailMessage:
        """Build the message informing the operator of a new submission."""
        settings = self.settings
        html = templates.render_template(
            NOTIFICATION_TEMPLATE,
            name=submission.name,
            email=submission.email,
            subject=submission.subject,
            message=submission.message,
        )
        return MailMessage(
            from_address=settings.from_address,
            to_address=settings.to_address,
            subject=_header_safe(f"Contact form: {submission.subject}"),
            html=html,
            reply_to=_header_safe(submission.email),
        )

    def compose_confirmation(self, submission: Submission) -> MailMessage:
        """Build the receipt confirmation sent back to the submitter."""
        html = templates.render_template(
            CONFIRMATION_TEMPLATE,
            name=submission.name,
            site_url=self.site_url,
        )
        return MailMessage(
            from_address=self.settings.from_address,
            to_address=_header_safe(submission.email),
            subject=CONFIRMATION_SUBJECT,
            html=html,
        )

    def deliver(self, submission: Submission) -> DeliveryReceipt:
        """
        Send notification and confirmation over one SMTP session.

        Args:
            submission: Validated submission

        Returns:
            DeliveryReceipt with the notification's Message-ID

        Raises:
            ConfigurationError: If required settings are missing (no connection made)
            SmtpConnectionError: If connecting or logging in to the relay fails
            SmtpSendError: If either message cannot be sent
        """
        settings = self.check_configuration()

        notification = build_mime_message(self.compose_notification(submission))
        confirmation = build_mime_message(self.compose_confirmation(submission))

        smtp = self._connect(settings)
        with smtp:
            self._send(smtp, notification, 'notification')
            self._send(smtp, confirmation, 'confirmation')

        message_id = notification['Message-ID']
        logger.info(f"Delivered notification {message_id} and confirmation to {confirmation['To']}")
        return DeliveryReceipt(message_id=message_id)

    def _connect(self, settings: MailSettings) -> smtplib.SMTP_SSL:
        """
        Open an implicit TLS session and log in before anything is sent.

        Raises:
            SmtpConnectionError: On connection, TLS or authentication failure
        """
        logger.info(f"Connecting to SMTP relay {settings.host}:{settings.port}")
        context = ssl.create_default_context()

        try:
            smtp = smtplib.SMTP_SSL(
                settings.host,
                settings.port,
                timeout=settings.timeout,
                context=context
            )
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP connection failed: {e}")
            raise SmtpConnectionError(f"Could not connect to mail server: {e}")

        try:
            smtp.login(settings.user, settings.password)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP login failed for user {settings.user}: {e}")
            smtp.close()
            raise SmtpConnectionError(f"Mail server rejected credentials: {e}")

        logger.info("SMTP connection verified")
        return smtp

    def _send(self, smtp: smtplib.SMTP_SSL, message: EmailMessage, which: str) -> None:
        try:
            smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send {which} email to {message['To']}: {e}")
            raise SmtpSendError(which, str(e))
        logger.info(f"Sent {which} email: {message['Message-ID']}")
