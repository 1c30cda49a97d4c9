"""
Error types raised by the sandbox purge tooling.
"""

from typing import Any, Dict, List, Optional


class SandboxPurgeError(Exception):
    """Base class for all sandbox purge errors."""


class ConfigurationError(SandboxPurgeError):
    """Invalid or missing configuration; aborts the run before any API call."""


class InventoryError(SandboxPurgeError):
    """Listing failed or returned malformed resource data."""


class RecipientResolutionError(SandboxPurgeError):
    """Recipients for a space could not be resolved."""


class AddressFormatError(RecipientResolutionError):
    """A selected user's username is not a valid email address."""

    def __init__(self, username: Optional[str]):
        self.username = username
        super().__init__(f"invalid email address: {username!r}")


class MailError(SandboxPurgeError):
    """Rendering or delivering an email failed."""


class Cancelled(SandboxPurgeError):
    """The run was cancelled or its deadline passed."""


class CFAPIError(SandboxPurgeError):
    """Non-successful response from the platform API."""

    def __init__(self, status_code: int, errors: Optional[List[Dict[str, Any]]] = None, url: str = ""):
        self.status_code = status_code
        self.errors = errors or []
        self.url = url
        details = "; ".join(
            f"{e.get('title', 'Error')}: {e.get('detail', '')}".strip() for e in self.errors
        )
        message = f"API request failed with status {status_code}"
        if url:
            message += f" ({url})"
        if details:
            message += f": {details}"
        super().__init__(message)


class JobFailedError(SandboxPurgeError):
    """An asynchronous platform job finished in the FAILED state."""

    def __init__(self, job_guid: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.job_guid = job_guid
        self.errors = errors or []
        super().__init__(f"job {job_guid} failed: {self.errors}")


class JobTimeoutError(SandboxPurgeError):
    """An asynchronous platform job did not complete in time."""

    def __init__(self, job_guid: str, timeout: float):
        self.job_guid = job_guid
        self.timeout = timeout
        super().__init__(f"job {job_guid} did not complete within {timeout:g}s")


class PurgeStepError(SandboxPurgeError):
    """A step of the purge/recreate sequence failed for one space."""

    def __init__(self, message: str, space_name: str = "", org_name: str = "", state: Optional[str] = None):
        self.space_name = space_name
        self.org_name = org_name
        self.state = state
        super().__init__(message)


class MaximumAttemptsReached(PurgeStepError):
    """Space deletion was not observed within the allowed number of lookups."""

    def __init__(self, space_name: str = "", org_name: str = "", attempts: int = 0):
        self.attempts = attempts
        super().__init__(
            f"maximum attempts reached ({attempts}) waiting for space {space_name} to be deleted",
            space_name=space_name,
            org_name=org_name,
            state="awaiting_confirmation",
        )
