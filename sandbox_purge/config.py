"""
Run configuration.

Values are loaded by the CLI from flags or environment variables; this
module only holds and validates them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .errors import ConfigurationError

DEFAULT_NOTIFY_DAYS = 25
DEFAULT_PURGE_DAYS = 30
DEFAULT_MAX_DELETE_ATTEMPTS = 10
DEFAULT_DELETE_POLL_INTERVAL = 5.0
DEFAULT_DELETE_JOB_TIMEOUT = 60.0


@dataclass
class SMTPOptions:
    """Configuration for sending mail via SMTP."""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_cert: str = ""  # PEM CA bundle used as the TLS trust root


@dataclass
class Options:
    """Configuration for a notify/purge run."""
    api_address: str = ""
    client_id: str = ""
    client_secret: str = ""
    org_prefix: str = ""
    notify_days: int = DEFAULT_NOTIFY_DAYS
    purge_days: int = DEFAULT_PURGE_DAYS
    dry_run: bool = True
    disable_purge: bool = False
    time_starts_at: str = ""
    sandbox_quota_name: str = ""
    mail_sender: str = ""
    notify_mail_subject: str = ""
    purge_mail_subject: str = ""
    max_delete_attempts: int = DEFAULT_MAX_DELETE_ATTEMPTS
    delete_poll_interval: float = DEFAULT_DELETE_POLL_INTERVAL
    delete_job_timeout: float = DEFAULT_DELETE_JOB_TIMEOUT
    stop_org_on_error: bool = False
    smtp: SMTPOptions = field(default_factory=SMTPOptions)

    def floor_time(self) -> Optional[datetime]:
        """Parse ``time_starts_at`` (RFC 3339). Empty means no floor."""
        return parse_timestamp(self.time_starts_at) if self.time_starts_at else None

    def validate(self, require_api: bool = True) -> None:
        """
        Check required settings and value ranges.

        Raises:
            ConfigurationError: Listing every problem found
        """
        problems: List[str] = []

        required = {"org_prefix": self.org_prefix}
        if require_api:
            required.update(
                api_address=self.api_address,
                client_id=self.client_id,
                client_secret=self.client_secret,
            )
        if not self.dry_run:
            required.update(
                mail_sender=self.mail_sender,
                notify_mail_subject=self.notify_mail_subject,
                purge_mail_subject=self.purge_mail_subject,
                smtp_host=self.smtp.smtp_host,
            )
        problems.extend(f"{name} is required" for name, value in required.items() if not value)

        if self.notify_days < 0 or self.purge_days < 0:
            problems.append("notify_days and purge_days must not be negative")
        if self.max_delete_attempts < 1:
            problems.append("max_delete_attempts must be at least 1")
        if self.delete_poll_interval < 0 or self.delete_job_timeout < 0:
            problems.append("delete_poll_interval and delete_job_timeout must not be negative")
        if not 0 < self.smtp.smtp_port < 65536:
            problems.append(f"smtp_port out of range: {self.smtp.smtp_port}")

        try:
            self.floor_time()
        except ConfigurationError as e:
            problems.append(str(e))

        if problems:
            raise ConfigurationError("invalid configuration: " + "; ".join(problems))


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp such as ``2023-07-01T00:00:00Z``.

    Raises:
        ConfigurationError: If the value is not a valid timestamp
    """
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ConfigurationError(f"invalid time_starts_at {value!r}: {e}") from e
    if "T" not in text.upper():
        raise ConfigurationError(f"invalid time_starts_at {value!r}: expected a date and time")
    if parsed.tzinfo is None:
        raise ConfigurationError(f"invalid time_starts_at {value!r}: missing UTC offset")
    return parsed.astimezone(timezone.utc)
