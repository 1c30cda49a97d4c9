"""
Tests for the org-by-org notify/purge sweep.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sandbox_purge.context import RunContext
from sandbox_purge.errors import CFAPIError, Cancelled, ConfigurationError, InventoryError
from sandbox_purge.events import EventTypes
from sandbox_purge.models import SPACE_DEVELOPER, App, Organization, Role, Space, User
from sandbox_purge.runner import run

NOW = datetime(2024, 3, 31, 9, 0, tzinfo=timezone.utc)
ORG_A = Organization(guid="org-a", name="sandbox-a")
ORG_B = Organization(guid="org-b", name="sandbox-b")
OTHER = Organization(guid="org-x", name="production")
DEV = User(guid="u-dev", username="dev@example.com")


def app_in(space, days_ago):
    return App(guid=f"app-{space.guid}", name="web", space_guid=space.guid, created_at=NOW - timedelta(days=days_ago))


@pytest.fixture
def sweep_cf(cf):
    """Two sandbox orgs: org A has one space per classification, org B one purge space."""
    spaces = {
        ORG_A.guid: [
            Space(guid="a-notify", name="notify-me", org_guid=ORG_A.guid),
            Space(guid="a-purge-1", name="purge-me", org_guid=ORG_A.guid),
            Space(guid="a-purge-2", name="purge-me-too", org_guid=ORG_A.guid),
            Space(guid="a-young", name="young", org_guid=ORG_A.guid),
        ],
        ORG_B.guid: [Space(guid="b-purge", name="old", org_guid=ORG_B.guid)],
    }
    ages = {"a-notify": 27, "a-purge-1": 35, "a-purge-2": 31, "a-young": 1, "b-purge": 40}

    def list_spaces(org_guids=None):
        return spaces[org_guids[0]]

    def list_apps(space_guids=None, org_guids=None):
        if org_guids:
            return [app_in(space, ages[space.guid]) for space in spaces[org_guids[0]]]
        return []

    cf.organizations.list_all.return_value = [ORG_A, OTHER, ORG_B]
    cf.users.list_all.return_value = [DEV, User(guid="u-bot", username="ci-deployer")]
    cf.spaces.list_all.side_effect = list_spaces
    cf.applications.list_all.side_effect = list_apps
    cf.spaces.list_users.return_value = [DEV]
    cf.roles.list_include_users.return_value = (
        [Role(type=SPACE_DEVELOPER, user_guid=DEV.guid)],
        [DEV],
    )
    cf.spaces.delete.return_value = "job-1"
    cf.spaces.create.side_effect = lambda name, org_guid: Space(guid=f"new-{name}", name=name, org_guid=org_guid)
    return cf


class TestRun:
    """Test the sweep across sandbox organizations."""

    def test_sweeps_only_prefixed_orgs(self, sweep_cf, opts, mailer, events):
        summary = run(sweep_cf, opts, mailer, now=NOW, events=events)

        assert summary.ok
        assert summary.orgs_checked == 2
        assert summary.notified == ["sandbox-a/notify-me"]
        assert [(r.org_name, r.space_name) for r in summary.purged] == [
            ("sandbox-a", "purge-me"),
            ("sandbox-a", "purge-me-too"),
            ("sandbox-b", "old"),
        ]
        scanned = [e["data"]["org"] for e in events.of_type(EventTypes.ORG_SCAN)]
        assert scanned == ["sandbox-a", "sandbox-b"]

    def test_dry_run_has_no_side_effects(self, sweep_cf, opts, mailer):
        opts.dry_run = True

        summary = run(sweep_cf, opts, mailer, now=NOW)

        assert summary.ok
        assert len(summary.purged) == 3
        mailer.send_mail.assert_not_called()
        sweep_cf.spaces.delete.assert_not_called()
        sweep_cf.spaces.create.assert_not_called()
        sweep_cf.roles.create_space_role.assert_not_called()

    def test_purge_failure_does_not_stop_the_org(self, sweep_cf, opts, mailer):
        """
        Collect-and-continue is a policy decision: a failed purge is recorded
        and the next space in the same org is still attempted.
        """
        sweep_cf.spaces.delete.side_effect = [CFAPIError(422), "job-2", "job-3"]

        summary = run(sweep_cf, opts, mailer, now=NOW)

        assert not summary.ok
        assert [(e.org, e.space, e.kind) for e in summary.errors] == [("sandbox-a", "purge-me", "PurgeStepError")]
        assert [r.space_name for r in summary.purged] == ["purge-me-too", "old"]
        assert sweep_cf.spaces.delete.call_count == 3

    def test_stop_org_on_error(self, sweep_cf, opts, mailer):
        opts.stop_org_on_error = True
        sweep_cf.spaces.delete.side_effect = [CFAPIError(422), "job-3"]

        summary = run(sweep_cf, opts, mailer, now=NOW)

        assert len(summary.errors) == 1
        assert [r.space_name for r in summary.purged] == ["old"]
        assert sweep_cf.spaces.delete.call_count == 2

    def test_notify_failure_is_recorded(self, sweep_cf, opts, mailer, events):
        sweep_cf.spaces.list_users.side_effect = CFAPIError(500)

        summary = run(sweep_cf, opts, mailer, now=NOW, events=events)

        assert summary.notified == []
        assert summary.errors[0].space == "notify-me"
        assert summary.errors[0].kind == "InventoryError"
        assert len(summary.purged) == 3
        assert len(events.of_type(EventTypes.SPACE_NOTIFY_FAILED)) == 1

    def test_org_inventory_failure_skips_org(self, sweep_cf, opts, mailer, events):
        def list_spaces(org_guids=None):
            if org_guids == [ORG_A.guid]:
                raise CFAPIError(503)
            return [Space(guid="b-purge", name="old", org_guid=ORG_B.guid)]

        sweep_cf.spaces.list_all.side_effect = list_spaces

        summary = run(sweep_cf, opts, mailer, now=NOW, events=events)

        assert summary.orgs_checked == 2
        assert [(e.org, e.space) for e in summary.errors] == [("sandbox-a", None)]
        assert [r.space_name for r in summary.purged] == ["old"]
        assert len(events.of_type(EventTypes.ORG_FAILED)) == 1

    def test_org_listing_failure_is_fatal(self, cf, opts, mailer):
        cf.organizations.list_all.side_effect = CFAPIError(500)

        with pytest.raises(InventoryError):
            run(cf, opts, mailer, now=NOW)

    def test_invalid_floor_time_fails_before_api_calls(self, cf, opts, mailer):
        opts.time_starts_at = "yesterday"

        with pytest.raises(ConfigurationError):
            run(cf, opts, mailer, now=NOW)
        cf.organizations.list_all.assert_not_called()

    def test_floor_time_limits_ages(self, sweep_cf, opts, mailer):
        opts.time_starts_at = "2024-03-20T00:00:00Z"

        summary = run(sweep_cf, opts, mailer, now=NOW)

        assert summary.notified == []
        assert summary.purged == []

    def test_cancelled_run(self, sweep_cf, opts, mailer):
        ctx = RunContext()
        ctx.cancel()

        with pytest.raises(Cancelled):
            run(sweep_cf, opts, mailer, ctx=ctx, now=NOW)

    def test_summary_to_dict(self, sweep_cf, opts, mailer):
        sweep_cf.spaces.delete.side_effect = [CFAPIError(422), "job-2", "job-3"]

        data = run(sweep_cf, opts, mailer, now=NOW).to_dict()

        assert data["ok"] is False
        assert data["orgs_checked"] == 2
        assert data["purged"][0]["state"] == "done"
        assert data["purged"][0]["new_space_guid"] == "new-purge-me-too"
        assert data["errors"][0]["space"] == "purge-me"
