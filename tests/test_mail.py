"""
Tests for email rendering and SMTP delivery.
"""

import smtplib
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from sandbox_purge.config import SMTPOptions
from sandbox_purge.errors import MailError
from sandbox_purge.mail import SMTPMailer, render_template
from sandbox_purge.models import Organization, Space

ORG = Organization(guid="org-1", name="sandbox-agency")
SPACE = Space(guid="space-1", name="jane.doe", org_guid="org-1")


class TestRenderTemplate:
    """Test template rendering."""

    def test_notify(self):
        body = render_template("notify.html", {
            "org": ORG,
            "space": SPACE,
            "date": datetime(2024, 4, 1, tzinfo=timezone.utc),
            "days": 30,
        })

        assert "jane.doe" in body
        assert "sandbox-agency" in body
        assert "Monday, April 01, 2024" in body
        assert "30 days" in body

    def test_purge(self):
        body = render_template("purge.html", {"org": ORG, "space": SPACE, "days": 30})

        assert "jane.doe" in body
        assert "sandbox-agency" in body
        assert "30 days" in body

    def test_names_are_escaped(self):
        space = Space(guid="space-1", name="<script>x</script>")

        body = render_template("purge.html", {"org": ORG, "space": space, "days": 30})

        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    def test_unknown_template(self):
        with pytest.raises(MailError):
            render_template("missing.html", {})


class TestSMTPMailer:
    """Test SMTP delivery with a mocked server."""

    @pytest.fixture
    def smtp_server(self):
        with patch("sandbox_purge.mail.smtplib.SMTP") as smtp_class:
            server = MagicMock()
            smtp_class.return_value.__enter__.return_value = server
            yield smtp_class, server

    def test_no_recipients_is_a_noop(self, smtp_server):
        smtp_class, _ = smtp_server

        SMTPMailer().send_mail(SMTPOptions(smtp_host="smtp.example.com"), "from@example.com", "subject", "body", [])

        smtp_class.assert_not_called()

    def test_sends_html_mail(self, smtp_server):
        smtp_class, server = smtp_server
        smtp = SMTPOptions(smtp_host="smtp.example.com", smtp_port=2525, smtp_user="user", smtp_pass="pass")

        SMTPMailer().send_mail(smtp, "from@example.com", "Reset", "<p>hi</p>", ["a@example.com", "b@example.com"])

        smtp_class.assert_called_once_with("smtp.example.com", 2525)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "pass")
        msg = server.send_message.call_args[0][0]
        assert msg["Subject"] == "Reset"
        assert msg["From"] == "from@example.com"
        assert msg.get_content_subtype() == "html"
        assert server.send_message.call_args[1]["to_addrs"] == ["a@example.com", "b@example.com"]

    def test_no_login_without_user(self, smtp_server):
        _, server = smtp_server

        SMTPMailer().send_mail(SMTPOptions(smtp_host="smtp.example.com"), "f@example.com", "s", "b", ["a@example.com"])

        server.login.assert_not_called()
        server.send_message.assert_called_once()

    def test_custom_ca_certificate(self, smtp_server):
        with patch("sandbox_purge.mail.ssl.create_default_context") as create_context:
            smtp = SMTPOptions(smtp_host="smtp.example.com", smtp_cert="-----BEGIN CERTIFICATE-----")
            SMTPMailer().send_mail(smtp, "f@example.com", "s", "b", ["a@example.com"])

        create_context.assert_called_once_with(cadata="-----BEGIN CERTIFICATE-----")

    def test_smtp_error(self, smtp_server):
        _, server = smtp_server
        server.send_message.side_effect = smtplib.SMTPRecipientsRefused({})

        with pytest.raises(MailError):
            SMTPMailer().send_mail(SMTPOptions(smtp_host="smtp.example.com"), "f@example.com", "s", "b", ["a@example.com"])

    def test_connection_error(self):
        with patch("sandbox_purge.mail.smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
            with pytest.raises(MailError, match="refused"):
                SMTPMailer().send_mail(
                    SMTPOptions(smtp_host="smtp.example.com"), "f@example.com", "s", "b", ["a@example.com"]
                )

    def test_starttls_skipped_when_not_offered(self, smtp_server):
        _, server = smtp_server
        server.has_extn.return_value = False

        SMTPMailer().send_mail(SMTPOptions(smtp_host="smtp.example.com"), "f@example.com", "s", "b", ["a@example.com"])

        server.has_extn.assert_called_once_with("starttls")
        server.starttls.assert_not_called()
        server.send_message.assert_called_once()

    def test_implicit_tls_on_port_465(self, smtp_server):
        smtp_class, _ = smtp_server
        with patch("sandbox_purge.mail.smtplib.SMTP_SSL") as smtp_ssl_class:
            server = MagicMock()
            smtp_ssl_class.return_value.__enter__.return_value = server
            smtp = SMTPOptions(smtp_host="smtp.example.com", smtp_port=465, smtp_user="user", smtp_pass="pass")

            SMTPMailer().send_mail(smtp, "f@example.com", "s", "b", ["a@example.com"])

        smtp_class.assert_not_called()
        assert smtp_ssl_class.call_args[0] == ("smtp.example.com", 465)
        assert "context" in smtp_ssl_class.call_args[1]
        server.starttls.assert_not_called()
        server.login.assert_called_once_with("user", "pass")
        server.send_message.assert_called_once()
