"""
Recipient and role reconciliation for sandbox spaces.
"""

import logging
import re
from email.utils import getaddresses
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .cf import RolesClient
from .errors import AddressFormatError
from .models import SPACE_DEVELOPER, SPACE_MANAGER, Role, User

logger = logging.getLogger(__name__)


DOMAIN_LABEL = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?")
ADDRESS_SPECIALS = set('<>,;:"()[]\\ ')


def is_email_address(value: Optional[str]) -> bool:
    """Check that a value is exactly one email address, bare or as ``Name <addr>``."""
    if not value:
        return False
    text = value.strip()
    parsed = [(name, address) for name, address in getaddresses([text]) if name or address]
    if len(parsed) != 1:
        return False

    address = parsed[0][1]
    if text != address:
        if not text.endswith(f"<{address}>"):
            return False
        display_name = text[: -len(address) - 2]
        if set("<>@,;").intersection(display_name):
            return False
    if ADDRESS_SPECIALS.intersection(address):
        return False

    local, at, domain = address.rpartition("@")
    if not at or not domain or "@" in local or not all(local.split(".")):
        return False
    return all(DOMAIN_LABEL.fullmatch(label) for label in domain.split("."))


def human_user_guids(users: Iterable[User]) -> Set[str]:
    """GUIDs of users whose username is email-shaped (i.e. not service accounts)."""
    return {user.guid for user in users if user.username and "@" in user.username}


def list_recipients(human_guids: Set[str], space_users: Iterable[User]) -> List[str]:
    """
    Get recipient email addresses from space users.

    Args:
        human_guids: GUIDs of human (email-named) users
        space_users: Users with a role in the space

    Returns:
        Usernames of the human space users, in input order

    Raises:
        AddressFormatError: If a selected user's username is not an email address
    """
    addresses = []
    for user in space_users:
        if user.guid not in human_guids:
            continue
        if not is_email_address(user.username):
            raise AddressFormatError(user.username)
        addresses.append(user.username)
    return addresses


def list_space_devs_and_managers(
    human_guids: Set[str],
    space_roles: Iterable[Role],
    space_users: Iterable[User],
    log: Optional[logging.Logger] = None,
) -> Tuple[List[str], List[str]]:
    """
    Split a space's human role holders into developer and manager usernames.

    Roles whose user cannot be resolved to a username are logged and skipped.

    Returns:
        Tuple of (developers, managers), each in role order
    """
    log = log or logger
    space_users = list(space_users)
    usernames: Optional[Dict[str, str]] = None

    developers: List[str] = []
    managers: List[str] = []
    for role in space_roles:
        if role.user_guid not in human_guids:
            continue

        if usernames is None:
            usernames = {user.guid: user.username for user in space_users if user.username}
        username = usernames.get(role.user_guid)
        if not username:
            log.warning(f"Could not find a username for user GUID {role.user_guid} in role {role.type}")
            continue

        if role.type == SPACE_DEVELOPER:
            developers.append(username)
        elif role.type == SPACE_MANAGER:
            managers.append(username)

    return developers, managers


def recreate_space_devs_and_managers(
    roles: RolesClient,
    space_guid: str,
    developers: List[str],
    managers: List[str],
) -> None:
    """Grant developer roles, then manager roles, on a space. Stops at the first failure."""
    for username in developers:
        roles.create_space_role(space_guid, username, SPACE_DEVELOPER)
    for username in managers:
        roles.create_space_role(space_guid, username, SPACE_MANAGER)
