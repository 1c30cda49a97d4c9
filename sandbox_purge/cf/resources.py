"""
Narrow per-resource API clients.

Each resource type has its own abstract interface so tests can swap a
single capability without faking the whole platform.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

from pydantic import ValidationError

from ..errors import InventoryError, JobFailedError, JobTimeoutError
from ..models import App, Organization, Role, ServiceInstance, Space, SpaceQuota, User
from .client import CFSession, job_guid_from_location

logger = logging.getLogger(__name__)

M = TypeVar("M")


def parse_resources(model: Type[M], items: Iterable[Dict[str, Any]]) -> List[M]:
    """Validate raw API resources, turning malformed data into ``InventoryError``."""
    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            raise InventoryError(f"malformed {model.__name__} {item.get('guid', '?')}: {e}") from e
    return parsed


def _csv(values: Optional[Iterable[str]]) -> Optional[str]:
    if not values:
        return None
    return ",".join(values)


def _filters(**filters: Optional[Iterable[str]]) -> Dict[str, str]:
    return {key: _csv(values) for key, values in filters.items() if values}


def _single(model: Type[M], items: List[Dict[str, Any]], description: str) -> Optional[M]:
    if not items:
        return None
    if len(items) > 1:
        raise InventoryError(f"expected at most one {description}, got {len(items)}")
    return parse_resources(model, items)[0]


class ApplicationsClient(ABC):
    @abstractmethod
    def list_all(self, space_guids: Optional[List[str]] = None, org_guids: Optional[List[str]] = None) -> List[App]:
        pass

    @abstractmethod
    def delete(self, guid: str) -> str:
        """Delete an app, returning the deletion job GUID (or '')."""
        pass


class OrganizationsClient(ABC):
    @abstractmethod
    def list_all(self) -> List[Organization]:
        pass


class RolesClient(ABC):
    @abstractmethod
    def create_space_role(self, space_guid: str, username: str, role_type: str) -> Role:
        pass

    @abstractmethod
    def list_include_users(self, space_guids: List[str]) -> Tuple[List[Role], List[User]]:
        pass


class ServiceInstancesClient(ABC):
    @abstractmethod
    def list_all(self, org_guids: Optional[List[str]] = None) -> List[ServiceInstance]:
        pass


class SpacesClient(ABC):
    @abstractmethod
    def list_all(self, org_guids: Optional[List[str]] = None) -> List[Space]:
        pass

    @abstractmethod
    def list_users(self, space_guid: str) -> List[User]:
        pass

    @abstractmethod
    def create(self, name: str, org_guid: str) -> Space:
        pass

    @abstractmethod
    def delete(self, guid: str) -> str:
        """Delete a space, returning the deletion job GUID (or '')."""
        pass

    @abstractmethod
    def single(self, name: str, org_guid: str) -> Optional[Space]:
        """Return the space with this name in the org, or None."""
        pass


class SpaceQuotasClient(ABC):
    @abstractmethod
    def single(self, name: str, org_guid: str) -> Optional[SpaceQuota]:
        pass

    @abstractmethod
    def apply(self, quota_guid: str, space_guids: List[str]) -> List[str]:
        pass


class UsersClient(ABC):
    @abstractmethod
    def list_all(self) -> List[User]:
        pass


class JobsClient(ABC):
    @abstractmethod
    def poll_complete(self, job_guid: str, timeout: float = 60.0, interval: float = 1.0) -> None:
        pass


class CFApplications(ApplicationsClient):
    def __init__(self, session: CFSession):
        self.session = session

    def list_all(self, space_guids=None, org_guids=None):
        params = _filters(space_guids=space_guids, organization_guids=org_guids)
        return parse_resources(App, self.session.list_all("/v3/apps", params))

    def delete(self, guid):
        response = self.session.request("DELETE", f"/v3/apps/{guid}")
        return job_guid_from_location(response.headers.get("Location"))


class CFOrganizations(OrganizationsClient):
    def __init__(self, session: CFSession):
        self.session = session

    def list_all(self):
        return parse_resources(Organization, self.session.list_all("/v3/organizations"))


class CFRoles(RolesClient):
    def __init__(self, session: CFSession):
        self.session = session

    def create_space_role(self, space_guid, username, role_type):
        body = {
            "type": role_type,
            "relationships": {
                "user": {"data": {"username": username}},
                "space": {"data": {"guid": space_guid}},
            },
        }
        response = self.session.request("POST", "/v3/roles", json=body)
        return parse_resources(Role, [response.json()])[0]

    def list_include_users(self, space_guids):
        params = _filters(space_guids=space_guids)
        params["include"] = "user"
        resources, included = self.session.list_all_with_included("/v3/roles", params)
        roles = parse_resources(Role, resources)
        users = parse_resources(User, included.get("users", []))
        return roles, users


class CFServiceInstances(ServiceInstancesClient):
    def __init__(self, session: CFSession):
        self.session = session

    def list_all(self, org_guids=None):
        params = _filters(organization_guids=org_guids)
        return parse_resources(ServiceInstance, self.session.list_all("/v3/service_instances", params))


class CFSpaces(SpacesClient):
    def __init__(self, session: CFSession):
        self.session = session

    def list_all(self, org_guids=None):
        params = _filters(organization_guids=org_guids)
        return parse_resources(Space, self.session.list_all("/v3/spaces", params))

    def list_users(self, space_guid):
        return parse_resources(User, self.session.list_all(f"/v3/spaces/{space_guid}/users"))

    def create(self, name, org_guid):
        body = {
            "name": name,
            "relationships": {"organization": {"data": {"guid": org_guid}}},
        }
        response = self.session.request("POST", "/v3/spaces", json=body)
        return parse_resources(Space, [response.json()])[0]

    def delete(self, guid):
        response = self.session.request("DELETE", f"/v3/spaces/{guid}")
        return job_guid_from_location(response.headers.get("Location"))

    def single(self, name, org_guid):
        params = _filters(names=[name], organization_guids=[org_guid])
        return _single(Space, self.session.list_all("/v3/spaces", params), f"space named {name}")


class CFSpaceQuotas(SpaceQuotasClient):
    def __init__(self, session: CFSession):
        self.session = session

    def single(self, name, org_guid):
        params = _filters(names=[name], organization_guids=[org_guid])
        return _single(SpaceQuota, self.session.list_all("/v3/space_quotas", params), f"space quota named {name}")

    def apply(self, quota_guid, space_guids):
        body = {"data": [{"guid": guid} for guid in space_guids]}
        response = self.session.request("POST", f"/v3/space_quotas/{quota_guid}/relationships/spaces", json=body)
        return [item["guid"] for item in response.json().get("data", [])]


class CFUsers(UsersClient):
    def __init__(self, session: CFSession):
        self.session = session

    def list_all(self):
        return parse_resources(User, self.session.list_all("/v3/users"))


class CFJobs(JobsClient):
    def __init__(self, session: CFSession):
        self.session = session

    def poll_complete(self, job_guid, timeout=60.0, interval=1.0):
        deadline = time.monotonic() + timeout
        while True:
            job = self.session.get(f"/v3/jobs/{job_guid}")
            state = job.get("state")
            if state == "COMPLETE":
                return
            if state == "FAILED":
                raise JobFailedError(job_guid, job.get("errors"))
            if time.monotonic() + interval > deadline:
                raise JobTimeoutError(job_guid, timeout)
            logger.debug(f"Job {job_guid} is {state}, checking again in {interval}s")
            self.session.ctx.sleep(interval)
