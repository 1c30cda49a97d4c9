"""
Notify/purge sweep across every sandbox organization.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .cf import CFClient
from .config import Options
from .context import RunContext
from .errors import Cancelled, InventoryError, PurgeStepError, SandboxPurgeError
from .events import EventLog, EventTypes
from .inventory import list_human_users, list_org_resources, list_sandbox_orgs
from .lifecycle import list_purge_spaces, truncate_day
from .mail import Mailer
from .notify import notify_space_users
from .purge import PurgeExecutor, PurgeResult

logger = logging.getLogger(__name__)


@dataclass
class SpaceFailure:
    org: str
    space: Optional[str]
    kind: str
    message: str


@dataclass
class RunSummary:
    """What a sweep did and which orgs or spaces failed."""
    orgs_checked: int = 0
    notified: List[str] = field(default_factory=list)
    purged: List[PurgeResult] = field(default_factory=list)
    errors: List[SpaceFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def record(self, org: str, space: Optional[str], error: Exception) -> None:
        self.errors.append(SpaceFailure(org=org, space=space, kind=type(error).__name__, message=str(error)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "orgs_checked": self.orgs_checked,
            "notified": self.notified,
            "purged": [
                {
                    "org": result.org_name,
                    "space": result.space_name,
                    "state": result.state.value,
                    "recreated": result.recreated,
                    "new_space_guid": result.new_space_guid,
                    "dry_run": result.dry_run,
                }
                for result in self.purged
            ],
            "errors": [error.__dict__ for error in self.errors],
        }


def run(
    cf: CFClient,
    opts: Options,
    mailer: Mailer,
    ctx: Optional[RunContext] = None,
    now: Optional[datetime] = None,
    events: Optional[EventLog] = None,
    log: Optional[logging.Logger] = None,
) -> RunSummary:
    """
    Notify owners of ageing sandbox spaces and purge expired ones.

    Failures of a single space are recorded and the sweep moves on; an org
    whose resources cannot be listed is recorded and skipped. With
    ``opts.stop_org_on_error`` the rest of an org's purge list is abandoned
    after its first purge failure.

    Raises:
        ConfigurationError: If the floor time is malformed
        InventoryError: If the orgs or users cannot be listed
        Cancelled: If the run was cancelled
    """
    floor_time = opts.floor_time()
    log = log or logger
    ctx = ctx or RunContext()
    events = events or EventLog(logger=log)
    now = truncate_day(now or datetime.now(timezone.utc))

    summary = RunSummary()
    events.emit(EventTypes.RUN_START, org_prefix=opts.org_prefix, dry_run=opts.dry_run, now=now.isoformat())

    orgs = list_sandbox_orgs(cf, opts.org_prefix)
    human_guids = list_human_users(cf)
    executor = PurgeExecutor(cf, opts, mailer, human_guids, ctx=ctx, events=events, log=log)

    for org in orgs:
        ctx.check()
        summary.orgs_checked += 1
        try:
            resources = list_org_resources(cf, org)
        except InventoryError as e:
            events.emit(EventTypes.ORG_FAILED, level=logging.ERROR, org=org.name, error=str(e))
            summary.record(org.name, None, e)
            continue

        to_notify, to_purge = list_purge_spaces(
            resources.spaces,
            resources.apps,
            resources.instances,
            now,
            opts.notify_days,
            opts.purge_days,
            disable_purge=opts.disable_purge,
            floor_time=floor_time,
        )
        events.emit(
            EventTypes.ORG_SCAN,
            org=org.name,
            spaces=len(resources.spaces),
            notify=len(to_notify),
            purge=len(to_purge),
        )

        for details in to_notify:
            try:
                notify_space_users(cf, opts, human_guids, org, details, mailer, events=events)
                summary.notified.append(f"{org.name}/{details.space.name}")
            except Cancelled:
                raise
            except SandboxPurgeError as e:
                events.emit(
                    EventTypes.SPACE_NOTIFY_FAILED,
                    level=logging.ERROR,
                    org=org.name,
                    space=details.space.name,
                    error=str(e),
                )
                summary.record(org.name, details.space.name, e)

        for details in to_purge:
            try:
                summary.purged.append(executor.purge(org, details))
            except Cancelled:
                raise
            except SandboxPurgeError as e:
                summary.record(org.name, details.space.name, e)
                if opts.stop_org_on_error and isinstance(e, PurgeStepError):
                    log.warning(f"Skipping remaining purges in org {org.name} after failure")
                    break

    events.emit(
        EventTypes.RUN_DONE,
        level=logging.INFO if summary.ok else logging.ERROR,
        orgs=summary.orgs_checked,
        notified=len(summary.notified),
        purged=len(summary.purged),
        errors=len(summary.errors),
    )
    return summary
