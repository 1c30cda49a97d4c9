"""
Owner notification for spaces approaching their purge date.
"""

import logging
from datetime import timedelta
from typing import Optional, Set

from .cf import CFClient
from .config import Options
from .errors import CFAPIError, InventoryError, MailError, RecipientResolutionError
from .events import EventLog, EventTypes
from .mail import Mailer, render_template
from .models import Organization, SpaceDetails
from .roles import list_recipients

logger = logging.getLogger(__name__)


def purge_date(details: SpaceDetails, purge_days: int):
    return details.timestamp + timedelta(days=purge_days)


def notify_space_users(
    cf: CFClient,
    opts: Options,
    human_guids: Set[str],
    org: Organization,
    details: SpaceDetails,
    mailer: Mailer,
    events: Optional[EventLog] = None,
) -> None:
    """
    Warn a space's human users that it will be purged.

    Raises:
        InventoryError: If the space's users cannot be listed
        RecipientResolutionError: If a user's username is not an email address
        MailError: If rendering or sending the email fails
    """
    events = events or EventLog()
    space = details.space

    try:
        space_users = cf.spaces.list_users(space.guid)
    except CFAPIError as e:
        raise InventoryError(f"error listing users on space {space.name}: {e}") from e

    try:
        recipients = list_recipients(human_guids, space_users)
    except RecipientResolutionError as e:
        raise RecipientResolutionError(f"error listing recipients on space {space.name}: {e}") from e

    when = purge_date(details, opts.purge_days)
    events.emit(
        EventTypes.SPACE_NOTIFY,
        org=org.name,
        space=space.name,
        recipients=recipients,
        purge_date=when.date().isoformat(),
        dry_run=opts.dry_run,
    )
    if opts.dry_run:
        return

    body = render_template("notify.html", {
        "org": org,
        "space": space,
        "date": when,
        "days": opts.purge_days,
    })
    logger.debug(f"sending to {recipients}: {body}")
    try:
        mailer.send_mail(opts.smtp, opts.mail_sender, opts.notify_mail_subject, body, recipients)
    except MailError as e:
        raise MailError(f"error sending mail on space {space.name}: {e}") from e
    events.emit(EventTypes.SPACE_NOTIFIED, org=org.name, space=space.name, recipients=len(recipients))
