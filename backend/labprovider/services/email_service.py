# backend/labprovider/services/email_service.py
"""SMTP delivery of lab credentials and WireGuard profiles."""
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Callable, Optional

logger = logging.getLogger(__name__)

WIREGUARD_MIME_TYPE = "application/x-wireguard-profile"


class EmailError(Exception):
    """Raised when an email cannot be built or delivered."""
    pass


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    mime_type: str = "application/octet-stream"


class EmailService:
    """Sends password notifications over SMTP with STARTTLS.

    If ``test_email_only`` is set, every message is redirected there and the
    body notes the original recipient.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_email: str = "",
        test_email_only: Optional[str] = None,
        timeout: float = 30.0,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        if not host or not username or not password:
            raise EmailError("SMTP configuration incomplete")
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email or username
        self.test_email_only = test_email_only or None
        self.timeout = timeout
        self._smtp_factory = smtp_factory

    def build_body(
        self,
        to: str,
        actual_recipient: str,
        vm_name: str,
        username: str,
        password: str,
        attachment: Optional[EmailAttachment] = None,
    ) -> str:
        body = (
            "Hello,\n\n"
            "Your ESXi lab environment is now ready!\n\n"
            f"VM Name: {vm_name}\n"
            f"Username: {username}\n"
            f"Password: {password}\n\n"
        )

        if self.test_email_only and to != actual_recipient:
            body += f"[TEST MODE] Original recipient: {to}\n\n"

        if attachment is not None:
            body += (
                f"A WireGuard VPN configuration file ({attachment.filename}) has been attached to this email.\n"
                "To connect to the lab network:\n"
                "1. Install WireGuard from https://www.wireguard.com/install/\n"
                "2. Import the attached configuration file\n"
                "3. Activate the tunnel\n\n"
            )

        body += (
            "This password has been automatically generated for your lab session.\n\n"
            "Best regards,\n"
            "ESXi Lab Provider\n"
        )
        return body

    def build_message(
        self,
        to: str,
        vm_name: str,
        username: str,
        password: str,
        attachment: Optional[EmailAttachment] = None,
    ) -> EmailMessage:
        """Build the notification; attachments make it multipart/mixed."""
        actual_recipient = self.test_email_only or to

        message = EmailMessage()
        message["From"] = self.from_email
        message["To"] = actual_recipient
        message["Subject"] = f"ESXi Lab Access - VM: {vm_name}"
        message.set_content(
            self.build_body(to, actual_recipient, vm_name, username, password, attachment)
        )

        if attachment is not None:
            maintype, _, subtype = attachment.mime_type.partition("/")
            message.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )
        return message

    def send_password_email(
        self,
        to: str,
        vm_name: str,
        username: str,
        password: str,
        attachment: Optional[EmailAttachment] = None,
    ) -> None:
        """Send the new credentials (and optional VPN profile) to ``to``.

        Raises:
            EmailError: If the SMTP exchange fails
        """
        message = self.build_message(to, vm_name, username, password, attachment)
        recipient = message["To"]

        try:
            with self._smtp_factory(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.starttls()
                smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailError(f"failed to send email to {recipient}: {e}") from e

        logger.debug(f"Email sent to {recipient}")
