"""
Tests for recipient resolution and role reconciliation.
"""

from unittest.mock import Mock, call

import pytest

from sandbox_purge.cf import RolesClient
from sandbox_purge.errors import AddressFormatError, CFAPIError, RecipientResolutionError
from sandbox_purge.models import SPACE_DEVELOPER, SPACE_MANAGER, Role, User
from sandbox_purge.roles import (
    human_user_guids,
    is_email_address,
    list_recipients,
    list_space_devs_and_managers,
    recreate_space_devs_and_managers,
)

DEV = User(guid="u-dev", username="dev@example.com")
MGR = User(guid="u-mgr", username="mgr@example.com")
BOT = User(guid="u-bot", username="ci-deployer")
HUMANS = {DEV.guid, MGR.guid}


class TestIsEmailAddress:
    """Test email address validation."""

    @pytest.mark.parametrize("value", [
        "dev@example.com",
        "first.last+tag@sub.example.org",
        "Jane Doe <jane@example.com>",
    ])
    def test_valid(self, value):
        assert is_email_address(value)

    @pytest.mark.parametrize("value", [
        "",
        None,
        "ci-deployer",
        "dev@",
        "@example.com",
        "a@example..com",
        "a@.example.com",
        "a@example.com.",
        "a@b.com, c@d.com",
        "a@b.com>",
        "a..b@example.com",
        "a@b@example.com",
    ])
    def test_invalid(self, value):
        assert not is_email_address(value)


class TestRecipients:
    """Test recipient list construction."""

    def test_human_user_guids(self):
        users = [DEV, MGR, BOT, User(guid="u-none")]
        assert human_user_guids(users) == HUMANS

    def test_intersection_in_input_order(self):
        assert list_recipients(HUMANS, [MGR, BOT, DEV]) == ["mgr@example.com", "dev@example.com"]

    def test_no_human_users(self):
        assert list_recipients(HUMANS, [BOT]) == []

    def test_invalid_username_raises(self):
        broken = User(guid="u-broken", username="broken@")

        with pytest.raises(AddressFormatError) as exc_info:
            list_recipients(HUMANS | {broken.guid}, [DEV, broken])

        assert exc_info.value.username == "broken@"
        assert isinstance(exc_info.value, RecipientResolutionError)

    @pytest.mark.parametrize("username", ["a@example..com", "a@b.com, c@d.com", "a@b.com>"])
    def test_malformed_addresses_are_not_sent_to(self, username):
        user = User(guid="u-odd", username=username)

        with pytest.raises(AddressFormatError):
            list_recipients({user.guid}, [user])


class TestDevsAndManagers:
    """Test developer/manager extraction from space roles."""

    def test_splits_by_role_type(self):
        roles = [
            Role(type=SPACE_DEVELOPER, user_guid=DEV.guid),
            Role(type=SPACE_MANAGER, user_guid=MGR.guid),
            Role(type="space_auditor", user_guid=DEV.guid),
        ]

        developers, managers = list_space_devs_and_managers(HUMANS, roles, [DEV, MGR])

        assert developers == ["dev@example.com"]
        assert managers == ["mgr@example.com"]

    def test_skips_non_human_users(self):
        roles = [Role(type=SPACE_DEVELOPER, user_guid=BOT.guid)]

        assert list_space_devs_and_managers(HUMANS, roles, [BOT]) == ([], [])

    def test_user_with_both_roles(self):
        roles = [
            Role(type=SPACE_DEVELOPER, user_guid=DEV.guid),
            Role(type=SPACE_MANAGER, user_guid=DEV.guid),
        ]

        assert list_space_devs_and_managers(HUMANS, roles, [DEV]) == (["dev@example.com"], ["dev@example.com"])

    def test_unresolvable_user_is_logged_and_skipped(self):
        log = Mock()
        roles = [
            Role(type=SPACE_DEVELOPER, user_guid=MGR.guid),
            Role(type=SPACE_DEVELOPER, user_guid=DEV.guid),
        ]

        developers, managers = list_space_devs_and_managers(HUMANS, roles, [DEV], log=log)

        assert developers == ["dev@example.com"]
        assert managers == []
        log.warning.assert_called_once()
        assert MGR.guid in log.warning.call_args[0][0]


class TestRecreateRoles:
    """Test role recreation on a new space."""

    def test_developers_then_managers(self):
        roles = Mock(spec=RolesClient)

        recreate_space_devs_and_managers(roles, "new-space", ["a@example.com", "b@example.com"], ["c@example.com"])

        assert roles.create_space_role.call_args_list == [
            call("new-space", "a@example.com", SPACE_DEVELOPER),
            call("new-space", "b@example.com", SPACE_DEVELOPER),
            call("new-space", "c@example.com", SPACE_MANAGER),
        ]

    def test_stops_at_first_failure(self):
        roles = Mock(spec=RolesClient)
        roles.create_space_role.side_effect = CFAPIError(422, [{"title": "CF-UnprocessableEntity"}])

        with pytest.raises(CFAPIError):
            recreate_space_devs_and_managers(roles, "new-space", ["a@example.com"], ["c@example.com"])

        roles.create_space_role.assert_called_once()
