"""
Space quota lookup for recreated sandbox spaces.
"""

import logging
from typing import Optional

from .cf import SpaceQuotasClient
from .models import SpaceQuota

logger = logging.getLogger(__name__)


def resolve_space_quota(space_quotas: SpaceQuotasClient, org_guid: str, quota_name: str) -> Optional[SpaceQuota]:
    """
    Find the named space quota in an organization.

    A missing quota is not an error: the space is recreated without one.
    """
    if not quota_name:
        return None

    quota = space_quotas.single(quota_name, org_guid)
    if quota is None:
        logger.info(f"No space quota named {quota_name} in org {org_guid}, recreating without quota")
    return quota
