"""
SMTP email sender for alert notifications.

Handles:
  - SMTP connection with TLS
  - MIME multipart construction (HTML + plaintext fallback)
  - Credential management (env vars > config file)
"""
import os
import ssl
import html
import smtplib
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

logger = logging.getLogger("governor.notifications.email_sender")

SEVERITY_COLORS = {
    "critical": "#D32F2F",
    "error": "#F57C00",
    "warning": "#FBC02D",
    "info": "#1976D2",
}


class EmailSender:
    """
    SMTP email sender.

    Credential resolution order:
      1. Environment variables: GOVERNOR_SMTP_USER, GOVERNOR_SMTP_PASS
      2. Config: smtp_username, smtp_password
    """

    def __init__(self, email_config: dict, timeout=30):
        self.smtp_host = email_config.get("smtp_host", "")
        self.smtp_port = email_config.get("smtp_port", 587)
        self.use_tls = email_config.get("use_tls", True)
        self.from_address = email_config.get("from_address", "")
        self.to_address = email_config.get("to_address", "")
        self.from_name = email_config.get("from_name", "Request Governor")
        self.timeout = timeout

        # Credential resolution: env vars take priority
        self.username = os.environ.get(
            "GOVERNOR_SMTP_USER",
            email_config.get("smtp_username", ""),
        )
        self.password = os.environ.get(
            "GOVERNOR_SMTP_PASS",
            email_config.get("smtp_password", ""),
        )

    def is_configured(self) -> bool:
        """Check if all required SMTP fields are present."""
        return all([self.smtp_host, self.from_address, self.to_address,
                    self.username, self.password])

    def build_alert_message(self, title: str, severity: str, message: str, alert_id: str) -> MIMEMultipart:
        subject = f"[{severity.upper()}] {title}"
        color = SEVERITY_COLORS.get(severity, "#1976D2")
        body = f"""
        <div style="font-family: system-ui, sans-serif; max-width: 500px; margin: 0 auto; padding: 20px;">
            <div style="padding: 16px; border-left: 4px solid {color};">
                <h3 style="margin-top: 0; color: {color};">{severity.upper()}: {html.escape(title)}</h3>
                <p>{html.escape(message)}</p>
                <p style="color: #888; font-size: 12px;">Alert id: {alert_id}</p>
            </div>
        </div>
        """

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = self.to_address
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText(f"{severity.upper()}: {title}\n{message}\nAlert id: {alert_id}", "plain"))
        msg.attach(MIMEText(body, "html", "utf-8"))
        return msg

    def send_alert(self, title: str, severity: str, message: str, alert_id: str = "") -> None:
        """Send a single alert email. Raises smtplib.SMTPException on failure."""
        msg = self.build_alert_message(title, severity, message, alert_id)
        self._send(msg)

    def _send(self, msg: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            server.ehlo()
            if self.use_tls:
                server.starttls(context=context)
                server.ehlo()
            server.login(self.username, self.password)
            server.send_message(msg)
        logger.info(f"Email sent to {self.to_address}: {msg['Subject']}")
