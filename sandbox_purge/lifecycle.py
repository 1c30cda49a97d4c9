"""
Space age calculation and notify/purge classification.

A space's age is driven only by its resources: the earliest creation time
among its apps and service instances. Spaces without resources are never
classified.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar

from .models import App, ServiceInstance, Space, SpaceDetails

R = TypeVar("R", App, ServiceInstance)


def truncate_day(value: datetime) -> datetime:
    """Truncate to midnight UTC. Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def group_by_space(resources: Sequence[R]) -> Dict[str, List[R]]:
    """Group apps or service instances by owning space GUID."""
    grouped: Dict[str, List[R]] = defaultdict(list)
    for resource in resources:
        grouped[resource.space_guid].append(resource)
    return dict(grouped)


def first_resource_time(
    space: Space,
    grouped_apps: Dict[str, List[App]],
    grouped_instances: Dict[str, List[ServiceInstance]],
) -> Optional[datetime]:
    """
    Get the creation time of the earliest-created resource in a space.

    Returns:
        The earliest ``created_at``, or None when the space has no resources
    """
    first = None
    for resource in grouped_apps.get(space.guid, []) + grouped_instances.get(space.guid, []):
        if first is None or resource.created_at < first:
            first = resource.created_at
    return first


def effective_time(first: datetime, floor_time: Optional[datetime] = None) -> datetime:
    """Clamp a first-resource time to the floor time, then truncate to the day."""
    if floor_time is not None and _utc(floor_time) > _utc(first):
        first = floor_time
    return truncate_day(first)


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def list_purge_spaces(
    spaces: Sequence[Space],
    apps: Sequence[App],
    instances: Sequence[ServiceInstance],
    now: datetime,
    notify_days: int,
    purge_days: int,
    disable_purge: bool = False,
    floor_time: Optional[datetime] = None,
) -> Tuple[List[SpaceDetails], List[SpaceDetails]]:
    """
    Identify spaces whose owners should be notified and spaces to purge.

    The purge threshold is checked first and both thresholds are inclusive.
    No ordering between ``notify_days`` and ``purge_days`` is assumed.

    Args:
        spaces: All spaces in the organization
        apps: All apps in the organization
        instances: All service instances in the organization
        now: Current time; truncated to the day here as well
        notify_days: Age in days at which owners are notified
        purge_days: Age in days at which the space is purged
        disable_purge: Never classify a space for purge
        floor_time: Earliest time counted towards a space's age

    Returns:
        Tuple of (to_notify, to_purge)
    """
    now = truncate_day(now)
    grouped_apps = group_by_space(apps)
    grouped_instances = group_by_space(instances)

    to_notify: List[SpaceDetails] = []
    to_purge: List[SpaceDetails] = []
    for space in spaces:
        first = first_resource_time(space, grouped_apps, grouped_instances)
        if first is None:
            continue

        effective = effective_time(first, floor_time)
        delta = (now - effective).days
        if not disable_purge and delta >= purge_days:
            to_purge.append(SpaceDetails(effective, space))
        elif delta >= notify_days:
            to_notify.append(SpaceDetails(effective, space))

    return to_notify, to_purge
