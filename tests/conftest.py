"""
Shared fixtures: a platform client assembled from per-resource mocks.
"""

from unittest.mock import Mock

import pytest

from sandbox_purge.cf import (
    ApplicationsClient,
    CFClient,
    JobsClient,
    OrganizationsClient,
    RolesClient,
    ServiceInstancesClient,
    SpaceQuotasClient,
    SpacesClient,
    UsersClient,
)
from sandbox_purge.config import Options, SMTPOptions
from sandbox_purge.events import EventLog
from sandbox_purge.mail import Mailer


@pytest.fixture
def cf():
    """CFClient whose resource clients are all spec'd mocks with empty defaults."""
    client = CFClient(
        applications=Mock(spec=ApplicationsClient),
        organizations=Mock(spec=OrganizationsClient),
        roles=Mock(spec=RolesClient),
        service_instances=Mock(spec=ServiceInstancesClient),
        spaces=Mock(spec=SpacesClient),
        space_quotas=Mock(spec=SpaceQuotasClient),
        users=Mock(spec=UsersClient),
        jobs=Mock(spec=JobsClient),
    )
    client.applications.list_all.return_value = []
    client.applications.delete.return_value = ""
    client.organizations.list_all.return_value = []
    client.roles.list_include_users.return_value = ([], [])
    client.service_instances.list_all.return_value = []
    client.spaces.list_all.return_value = []
    client.spaces.list_users.return_value = []
    client.spaces.single.return_value = None
    client.spaces.delete.return_value = ""
    client.space_quotas.single.return_value = None
    client.space_quotas.apply.return_value = []
    client.users.list_all.return_value = []
    client.jobs.poll_complete.return_value = None
    return client


@pytest.fixture
def mailer():
    return Mock(spec=Mailer)


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def opts():
    """Live (non dry-run) options with instant polling."""
    return Options(
        api_address="https://api.example.com",
        client_id="purge-client",
        client_secret="secret",
        org_prefix="sandbox-",
        dry_run=False,
        sandbox_quota_name="sandbox-quota",
        mail_sender="no-reply@example.com",
        notify_mail_subject="Your sandbox space will be reset",
        purge_mail_subject="Your sandbox space has been reset",
        max_delete_attempts=3,
        delete_poll_interval=0.0,
        delete_job_timeout=5.0,
        smtp=SMTPOptions(smtp_host="smtp.example.com"),
    )
