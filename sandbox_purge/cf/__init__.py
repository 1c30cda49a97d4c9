"""
Cloud Foundry v3 API client composed of independent resource clients.
"""

from dataclasses import dataclass
from typing import Optional

import requests

from ..context import RunContext
from .client import CFSession, UAATokenProvider, discover_token_url
from .resources import (
    ApplicationsClient,
    CFApplications,
    CFJobs,
    CFOrganizations,
    CFRoles,
    CFServiceInstances,
    CFSpaceQuotas,
    CFSpaces,
    CFUsers,
    JobsClient,
    OrganizationsClient,
    RolesClient,
    ServiceInstancesClient,
    SpaceQuotasClient,
    SpacesClient,
    UsersClient,
)


@dataclass
class CFClient:
    """The set of resource clients the purge tooling depends on."""
    applications: Optional[ApplicationsClient] = None
    organizations: Optional[OrganizationsClient] = None
    roles: Optional[RolesClient] = None
    service_instances: Optional[ServiceInstancesClient] = None
    spaces: Optional[SpacesClient] = None
    space_quotas: Optional[SpaceQuotasClient] = None
    users: Optional[UsersClient] = None
    jobs: Optional[JobsClient] = None

    @classmethod
    def from_session(cls, session: CFSession) -> "CFClient":
        return cls(
            applications=CFApplications(session),
            organizations=CFOrganizations(session),
            roles=CFRoles(session),
            service_instances=CFServiceInstances(session),
            spaces=CFSpaces(session),
            space_quotas=CFSpaceQuotas(session),
            users=CFUsers(session),
            jobs=CFJobs(session),
        )

    @classmethod
    def from_credentials(
        cls,
        api_url: str,
        client_id: str,
        client_secret: str,
        ctx: Optional[RunContext] = None,
    ) -> "CFClient":
        """Authenticate with client credentials against the API's login server."""
        http = requests.Session()
        token_url = discover_token_url(api_url, http)
        tokens = UAATokenProvider(token_url, client_id, client_secret, http)
        return cls.from_session(CFSession(api_url, token_provider=tokens, session=http, ctx=ctx))


__all__ = [
    "CFClient",
    "CFSession",
    "UAATokenProvider",
    "ApplicationsClient",
    "JobsClient",
    "OrganizationsClient",
    "RolesClient",
    "ServiceInstancesClient",
    "SpaceQuotasClient",
    "SpacesClient",
    "UsersClient",
]
