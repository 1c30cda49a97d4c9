"""
Purge and recreate a sandbox space.

Each space goes through a strictly ordered sequence: gather roles, send the
purge email, delete (falling back to deleting apps one by one), confirm the
deletion, recreate the space and reassign its developers and managers.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from .cf import CFClient, JobsClient, SpacesClient
from .config import Options
from .context import RunContext
from .errors import (
    CFAPIError,
    Cancelled,
    InventoryError,
    JobFailedError,
    JobTimeoutError,
    MailError,
    MaximumAttemptsReached,
    PurgeStepError,
    RecipientResolutionError,
)
from .events import EventLog, EventTypes
from .mail import Mailer, render_template
from .models import Organization, Space, SpaceDetails
from .quota import resolve_space_quota
from .roles import list_recipients, list_space_devs_and_managers, recreate_space_devs_and_managers

logger = logging.getLogger(__name__)


class PurgeState(Enum):
    """States of a single space purge."""
    IDLE = "idle"
    GATHERING = "gathering"
    NOTIFYING = "notifying"
    DELETING = "deleting"
    DELETE_FALLBACK = "delete_fallback"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    RECREATING = "recreating"
    REASSIGNING_ROLES = "reassigning_roles"
    DONE = "done"
    ABORTED = "aborted"


TRANSITIONS: Dict[PurgeState, List[PurgeState]] = {
    PurgeState.IDLE: [PurgeState.GATHERING],
    PurgeState.GATHERING: [PurgeState.NOTIFYING, PurgeState.DONE],
    PurgeState.NOTIFYING: [PurgeState.DELETING],
    PurgeState.DELETING: [PurgeState.DELETE_FALLBACK, PurgeState.AWAITING_CONFIRMATION],
    PurgeState.DELETE_FALLBACK: [],
    PurgeState.AWAITING_CONFIRMATION: [PurgeState.RECREATING, PurgeState.DONE],
    PurgeState.RECREATING: [PurgeState.REASSIGNING_ROLES],
    PurgeState.REASSIGNING_ROLES: [PurgeState.DONE],
    PurgeState.DONE: [],
    PurgeState.ABORTED: [],
}


@dataclass
class PurgeResult:
    """Outcome of purging one space."""
    org_name: str
    space_name: str
    state: PurgeState = PurgeState.IDLE
    history: List[PurgeState] = field(default_factory=list)
    recipients: List[str] = field(default_factory=list)
    developers: List[str] = field(default_factory=list)
    managers: List[str] = field(default_factory=list)
    delete_job_guid: str = ""
    new_space_guid: Optional[str] = None
    quota_guid: Optional[str] = None
    dry_run: bool = False
    recreated: bool = False


def wait_until_space_is_fully_deleted(
    spaces: SpacesClient,
    org: Organization,
    space_name: str,
    max_attempts: int,
    interval: float = 0.0,
    ctx: Optional[RunContext] = None,
) -> None:
    """
    Poll until no space with this name exists in the org.

    Lookup errors propagate immediately.

    Raises:
        MaximumAttemptsReached: If the space is still present after ``max_attempts`` lookups
    """
    ctx = ctx or RunContext()
    for attempt in range(1, max_attempts + 1):
        ctx.check()
        if spaces.single(space_name, org.guid) is None:
            return
        if attempt < max_attempts:
            logger.debug(f"Space {space_name} still exists (attempt {attempt}/{max_attempts})")
            ctx.sleep(interval)
    raise MaximumAttemptsReached(space_name, org.name, max_attempts)


def wait_for_delete_job(jobs: JobsClient, job_guid: str, timeout: float, interval: float = 1.0) -> bool:
    """
    Poll an asynchronous delete job to completion.

    Returns:
        False when there is no job to verify, True once the job completed
    """
    if not job_guid:
        return False
    jobs.poll_complete(job_guid, timeout=timeout, interval=interval)
    return True


class PurgeExecutor:
    """Runs the purge/recreate sequence for spaces of one run."""

    def __init__(
        self,
        cf: CFClient,
        opts: Options,
        mailer: Mailer,
        human_guids: Set[str],
        ctx: Optional[RunContext] = None,
        events: Optional[EventLog] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.cf = cf
        self.opts = opts
        self.mailer = mailer
        self.human_guids = human_guids
        self.ctx = ctx or RunContext()
        self.logger = log or logger
        self.events = events or EventLog(logger=self.logger)

    def purge(self, org: Organization, details: SpaceDetails) -> PurgeResult:
        """
        Purge one space and recreate it for its developers and managers.

        Raises:
            RecipientResolutionError: If a recipient username is not an email address
            PurgeStepError: If any step fails (``MaximumAttemptsReached`` on confirmation timeout)
            Cancelled: If the run was cancelled
        """
        space = details.space
        result = PurgeResult(org_name=org.name, space_name=space.name, dry_run=self.opts.dry_run)
        try:
            self._run(org, space, result)
        except (PurgeStepError, RecipientResolutionError, Cancelled) as e:
            if isinstance(e, PurgeStepError) and e.state is None:
                e.state = result.state.value
            self._abort(result, e)
            raise
        return result

    def _run(self, org: Organization, space: Space, result: PurgeResult) -> None:
        self._transition(result, PurgeState.GATHERING)
        self._gather(org, space, result)
        if self.opts.dry_run:
            self.events.emit(
                EventTypes.PURGE_DRY_RUN,
                org=org.name,
                space=space.name,
                recipients=result.recipients,
                developers=result.developers,
                managers=result.managers,
            )
            self._transition(result, PurgeState.DONE)
            return

        self._transition(result, PurgeState.NOTIFYING)
        self._send_purge_email(org, space, result)

        self._transition(result, PurgeState.DELETING)
        result.delete_job_guid = self._delete(org, space, result)

        self._transition(result, PurgeState.AWAITING_CONFIRMATION)
        self._confirm(org, space, result)

        if not result.developers and not result.managers:
            self.logger.info(f"Space {space.name} had no developers or managers, not recreating it")
            self._transition(result, PurgeState.DONE)
            self._done(org, space, result)
            return

        self._transition(result, PurgeState.RECREATING)
        new_space = self._recreate(org, space, result)

        self._transition(result, PurgeState.REASSIGNING_ROLES)
        self._reassign(org, space, new_space, result)

        self._transition(result, PurgeState.DONE)
        self._done(org, space, result)

    def _gather(self, org: Organization, space: Space, result: PurgeResult) -> None:
        try:
            roles, users = self.cf.roles.list_include_users([space.guid])
        except (CFAPIError, InventoryError) as e:
            raise self._step_error(f"error listing roles with users on space {space.name}", org, space, e) from e

        try:
            result.recipients = list_recipients(self.human_guids, users)
        except RecipientResolutionError as e:
            raise RecipientResolutionError(f"error listing recipients on space {space.name}: {e}") from e

        result.developers, result.managers = list_space_devs_and_managers(
            self.human_guids, roles, users, log=self.logger
        )
        self.logger.info(f"Purging space {space.name}; recipients: {result.recipients}")

    def _send_purge_email(self, org: Organization, space: Space, result: PurgeResult) -> None:
        try:
            body = render_template("purge.html", {"org": org, "space": space, "days": self.opts.purge_days})
            self.logger.debug(f"sending to {result.recipients}: {body}")
            self.mailer.send_mail(
                self.opts.smtp,
                self.opts.mail_sender,
                self.opts.purge_mail_subject,
                body,
                result.recipients,
            )
        except MailError as e:
            raise self._step_error(
                f"error sending purge notification email for space {space.name} in org {org.name}", org, space, e
            ) from e

    def _delete(self, org: Organization, space: Space, result: PurgeResult) -> str:
        """Delete the space; on failure delete its apps individually and re-raise."""
        self.ctx.check()
        try:
            return self.cf.spaces.delete(space.guid)
        except (CFAPIError, InventoryError) as delete_error:
            self._transition(result, PurgeState.DELETE_FALLBACK)
            self._delete_space_apps(org, space)
            raise self._step_error(f"error purging space {space.name} in org {org.name}", org, space, delete_error) from delete_error

    def _delete_space_apps(self, org: Organization, space: Space) -> None:
        try:
            apps = self.cf.applications.list_all(space_guids=[space.guid])
        except (CFAPIError, InventoryError) as e:
            self.logger.error(f"Fallback cleanup could not list apps in space {space.name}: {e}")
            return

        deleted = 0
        for app in apps:
            try:
                self.cf.applications.delete(app.guid)
                deleted += 1
            except (CFAPIError, InventoryError) as e:
                self.logger.error(f"Fallback cleanup failed to delete app {app.name} ({app.guid}): {e}")
        self.events.emit(
            EventTypes.DELETE_FALLBACK,
            level=logging.WARNING,
            org=org.name,
            space=space.name,
            apps_deleted=deleted,
            apps_found=len(apps),
        )

    def _confirm(self, org: Organization, space: Space, result: PurgeResult) -> None:
        try:
            verified = wait_for_delete_job(
                self.cf.jobs,
                result.delete_job_guid,
                timeout=self.opts.delete_job_timeout,
                interval=max(self.opts.delete_poll_interval, 0.0),
            )
        except (CFAPIError, JobFailedError, JobTimeoutError) as e:
            raise self._step_error(
                f"error waiting for delete job {result.delete_job_guid} to be complete", org, space, e
            ) from e
        if not verified:
            self.events.emit(EventTypes.DELETE_UNVERIFIED, org=org.name, space=space.name)
            self.logger.info(f"no job GUID for deletion of space {space.name}, cannot verify deletion via job")

        try:
            wait_until_space_is_fully_deleted(
                self.cf.spaces,
                org,
                space.name,
                self.opts.max_delete_attempts,
                interval=self.opts.delete_poll_interval,
                ctx=self.ctx,
            )
        except (CFAPIError, InventoryError) as e:
            raise self._step_error(f"error waiting for space {space.name} to be deleted", org, space, e) from e

    def _recreate(self, org: Organization, space: Space, result: PurgeResult) -> Space:
        self.ctx.check()
        try:
            quota = resolve_space_quota(self.cf.space_quotas, org.guid, self.opts.sandbox_quota_name)
            new_space = self.cf.spaces.create(space.name, org.guid)
            if quota is not None:
                self.cf.space_quotas.apply(quota.guid, [new_space.guid])
                result.quota_guid = quota.guid
        except (CFAPIError, InventoryError) as e:
            raise self._step_error(f"error recreating space {space.name} in org {org.name}", org, space, e) from e

        result.new_space_guid = new_space.guid
        result.recreated = True
        self.logger.info(f"Recreated space {space.name} as {new_space.guid}")
        return new_space

    def _reassign(self, org: Organization, space: Space, new_space: Space, result: PurgeResult) -> None:
        self.ctx.check()
        try:
            recreate_space_devs_and_managers(self.cf.roles, new_space.guid, result.developers, result.managers)
        except (CFAPIError, InventoryError) as e:
            raise self._step_error(
                f"error recreating space developers/managers for space {space.name} in org {org.name}",
                org,
                space,
                e,
            ) from e

    def _done(self, org: Organization, space: Space, result: PurgeResult) -> None:
        self.events.emit(
            EventTypes.PURGE_DONE,
            org=org.name,
            space=space.name,
            recreated=result.recreated,
            new_space_guid=result.new_space_guid,
        )

    def _transition(self, result: PurgeResult, state: PurgeState) -> None:
        if state not in TRANSITIONS[result.state]:
            raise RuntimeError(f"invalid purge transition {result.state.value} -> {state.value}")
        result.history.append(result.state)
        result.state = state
        self.events.emit(
            EventTypes.PURGE_STATE,
            level=logging.DEBUG,
            org=result.org_name,
            space=result.space_name,
            state=state.value,
        )

    def _abort(self, result: PurgeResult, error: Exception) -> None:
        result.history.append(result.state)
        failed_in = result.state
        result.state = PurgeState.ABORTED
        self.events.emit(
            EventTypes.PURGE_FAILED,
            level=logging.ERROR,
            org=result.org_name,
            space=result.space_name,
            state=failed_in.value,
            error=str(error),
        )

    def _step_error(self, message: str, org: Organization, space: Space, cause: Exception) -> PurgeStepError:
        return PurgeStepError(f"{message}: {cause}", space_name=space.name, org_name=org.name)
