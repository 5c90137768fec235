# signaturepro/utils/email_service.py

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from signaturepro.core.config import Settings, settings
from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)


def build_message(sender: str, to: str, subject: str, html: str, text: Optional[str] = None) -> MIMEMultipart:
    """Multipart/alternative message with a plain-text and an HTML part."""
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to
    if text:
        msg.attach(MIMEText(text, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))
    return msg


class MailTransport:
    """
    Hands a rendered email to a delivery service.
    Returns True on success, False when the service refused or failed.
    Retries, if any, belong to the concrete transport.
    """

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        raise NotImplementedError


class SESMailTransport(MailTransport):
    """Sends raw MIME messages through Amazon SES."""

    def __init__(
        self,
        sender: str,
        region_name: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        configuration_set: Optional[str] = None,
        ses_client=None,
    ):
        self.sender = sender
        self.configuration_set = configuration_set
        self.ses_client = ses_client or boto3.client(
            "ses",
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            region_name=region_name,
        )

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        msg = build_message(self.sender, to, subject, html, text)
        kwargs = {
            "Source": self.sender,
            "Destinations": [to],
            "RawMessage": {"Data": msg.as_string()},
        }
        if self.configuration_set:
            kwargs["ConfigurationSetName"] = self.configuration_set

        try:
            self.ses_client.send_raw_email(**kwargs)
            logger.info("Email sent successfully", subject=subject, to=to)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to send email", subject=subject, to=to, error_message=str(e))
            return False


class SMTPMailTransport(MailTransport):
    """Sends through an SMTP relay, upgrading with STARTTLS when enabled."""

    def __init__(
        self,
        sender: str,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.sender = sender
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        msg = build_message(self.sender, to, subject, html, text)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.sendmail(self.sender, [to], msg.as_string())
            logger.info("Email sent successfully", subject=subject, to=to)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email", subject=subject, to=to, error_message=str(e))
            return False


def build_mail_transport(config: Settings = settings) -> MailTransport:
    """Mail transport selected by the MAIL_TRANSPORT setting."""
    sender = f"{config.app_name} <{config.email_from}>"
    if config.mail_transport.lower() == "smtp":
        return SMTPMailTransport(
            sender=sender,
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
        )
    return SESMailTransport(
        sender=sender,
        region_name=config.aws_region,
        aws_access_key_id=config.aws_access_key_id,
        aws_secret_access_key=config.aws_secret_access_key,
        configuration_set=config.aws_ses_configuration_set,
    )
