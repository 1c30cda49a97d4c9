"""
Email rendering and SMTP delivery.
"""

import logging
import smtplib
import ssl
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from typing import Any, Dict, List

from jinja2 import Environment, PackageLoader, TemplateError, select_autoescape

from .config import SMTPOptions
from .errors import MailError

logger = logging.getLogger(__name__)

# implicit TLS; any other port negotiates STARTTLS when offered
SMTPS_PORT = 465

_env = Environment(
    loader=PackageLoader("sandbox_purge", "templates"),
    autoescape=select_autoescape(["html"]),
    keep_trailing_newline=True,
)


def render_template(name: str, data: Dict[str, Any]) -> str:
    """Render one of the packaged email templates (``notify.html``, ``purge.html``)."""
    try:
        return _env.get_template(name).render(**data)
    except TemplateError as e:
        raise MailError(f"error rendering {name}: {e}") from e


class Mailer(ABC):
    @abstractmethod
    def send_mail(
        self,
        smtp: SMTPOptions,
        sender: str,
        subject: str,
        body: str,
        recipients: List[str],
    ) -> None:
        pass


class SMTPMailer(Mailer):
    """Sends HTML mail over SMTP, with implicit TLS on port 465 and STARTTLS elsewhere."""

    def send_mail(self, smtp, sender, subject, body, recipients):
        if not recipients:
            return

        msg = MIMEText(body, "html")
        msg["From"] = sender
        msg["Subject"] = subject
        msg["To"] = ", ".join(recipients)

        try:
            if smtp.smtp_cert:
                context = ssl.create_default_context(cadata=smtp.smtp_cert)
            else:
                context = ssl.create_default_context()
            implicit_tls = smtp.smtp_port == SMTPS_PORT
            if implicit_tls:
                connection = smtplib.SMTP_SSL(smtp.smtp_host, smtp.smtp_port, context=context)
            else:
                connection = smtplib.SMTP(smtp.smtp_host, smtp.smtp_port)
            with connection as server:
                if not implicit_tls:
                    server.ehlo()
                    if server.has_extn("starttls"):
                        server.starttls(context=context)
                        server.ehlo()
                    else:
                        logger.warning(f"SMTP server {smtp.smtp_host} does not offer STARTTLS, sending in plaintext")
                if smtp.smtp_user:
                    server.login(smtp.smtp_user, smtp.smtp_pass)
                server.send_message(msg, from_addr=sender, to_addrs=recipients)
        except (smtplib.SMTPException, OSError) as e:
            raise MailError(f"error sending mail to {recipients}: {e}") from e
        logger.info(f"Email '{subject}' sent to {len(recipients)} recipient(s)")
