"""
Organization, space and resource listing.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Set

from .cf import CFClient
from .errors import CFAPIError, InventoryError
from .models import App, Organization, ServiceInstance, Space
from .roles import human_user_guids

logger = logging.getLogger(__name__)


@dataclass
class OrgResources:
    """Spaces, apps and service instances of one organization."""
    spaces: List[Space] = field(default_factory=list)
    apps: List[App] = field(default_factory=list)
    instances: List[ServiceInstance] = field(default_factory=list)


def list_sandbox_orgs(cf: CFClient, prefix: str) -> List[Organization]:
    """List organizations whose name starts with the sandbox prefix."""
    try:
        orgs = cf.organizations.list_all()
    except CFAPIError as e:
        raise InventoryError(f"error listing organizations: {e}") from e
    return [org for org in orgs if org.name.startswith(prefix)]


def list_human_users(cf: CFClient) -> Set[str]:
    """GUIDs of every platform user with an email-address username."""
    try:
        users = cf.users.list_all()
    except CFAPIError as e:
        raise InventoryError(f"error listing users: {e}") from e
    human = human_user_guids(users)
    logger.debug(f"{len(human)} of {len(users)} users have email usernames")
    return human


def list_org_resources(cf: CFClient, org: Organization) -> OrgResources:
    """
    Fetch apps, service instances and spaces within an organization.

    Raises:
        InventoryError: If any listing fails or returns malformed data
    """
    try:
        apps = cf.applications.list_all(org_guids=[org.guid])
        instances = cf.service_instances.list_all(org_guids=[org.guid])
        spaces = cf.spaces.list_all(org_guids=[org.guid])
    except CFAPIError as e:
        raise InventoryError(f"error listing resources for org {org.name}: {e}") from e
    return OrgResources(spaces=spaces, apps=apps, instances=instances)
