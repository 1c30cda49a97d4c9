"""
Data models for platform resources and classified spaces.

Resources are parsed from v3 API JSON. Relationship GUIDs are flattened
onto the model so callers never walk ``relationships.x.data.guid``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, model_validator

SPACE_DEVELOPER = "space_developer"
SPACE_MANAGER = "space_manager"


def _related_guid(data: Dict[str, Any], name: str) -> Optional[str]:
    """Extract ``relationships[name].data.guid`` from a v3 resource."""
    relationship = (data.get("relationships") or {}).get(name) or {}
    target = relationship.get("data") or {}
    return target.get("guid")


class Resource(BaseModel):
    """Base class for v3 resources."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    guid: str

    @classmethod
    def _flatten(cls, data: Dict[str, Any], **fields: str) -> Dict[str, Any]:
        if not isinstance(data, dict) or "relationships" not in data:
            return data
        flattened = dict(data)
        for field_name, relationship in fields.items():
            if field_name not in flattened:
                flattened[field_name] = _related_guid(data, relationship)
        return flattened


class Organization(Resource):
    name: str


class Space(Resource):
    name: str
    org_guid: Optional[str] = None
    quota_guid: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _relationships(cls, data: Any) -> Any:
        return cls._flatten(data, org_guid="organization", quota_guid="quota")


class App(Resource):
    name: str = ""
    space_guid: str
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _relationships(cls, data: Any) -> Any:
        return cls._flatten(data, space_guid="space")


class ServiceInstance(Resource):
    name: str = ""
    space_guid: str
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _relationships(cls, data: Any) -> Any:
        return cls._flatten(data, space_guid="space")


class User(Resource):
    username: Optional[str] = None


class Role(Resource):
    guid: str = ""
    type: str
    user_guid: Optional[str] = None
    space_guid: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _relationships(cls, data: Any) -> Any:
        return cls._flatten(data, user_guid="user", space_guid="space")


class SpaceQuota(Resource):
    name: str = ""
    org_guid: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _relationships(cls, data: Any) -> Any:
        return cls._flatten(data, org_guid="organization")


@dataclass
class SpaceDetails:
    """A classified space and its effective first-resource time (day-truncated)."""
    timestamp: datetime
    space: Space
