"""
Unit tests for the custom exception hierarchy.

Validates exception creation, inheritance, and attribute storage.
"""

import pytest

from core.exceptions import (
    OpsboardError,
    ProfileConfigError,
    TenantNotResolvedError,
    DataAccessError,
    FetchError,
    MutationError,
    RowNotFoundError,
    ChangeEventError,
    SubscriptionError,
)


class TestOpsboardError:
    """Tests for the base exception class."""

    def test_basic_creation(self):
        err = OpsboardError("something broke")
        assert str(err) == "something broke"
        assert err.details == {}

    def test_with_details(self):
        err = OpsboardError("oops", details={"code": 42})
        assert err.details["code"] == 42

    def test_is_exception(self):
        assert issubclass(OpsboardError, Exception)


class TestProfileConfigError:
    """Tests for profile configuration errors."""

    def test_stores_profile_and_path(self):
        err = ProfileConfigError(
            "bad yaml", profile_id="default", config_path="profiles/default/config.yaml"
        )
        assert err.profile_id == "default"
        assert err.config_path == "profiles/default/config.yaml"

    def test_catchable_as_opsboard_error(self):
        with pytest.raises(OpsboardError):
            raise ProfileConfigError("invalid", profile_id="x")


class TestTenantNotResolvedError:

    def test_inherits_opsboard_error(self):
        assert issubclass(TenantNotResolvedError, OpsboardError)


class TestDataAccessErrors:
    """Tests for fetch and mutation errors."""

    def test_fetch_error_stores_table_and_org(self):
        err = FetchError("down", table="leads", organization_id="org-1")
        assert err.table == "leads"
        assert err.organization_id == "org-1"

    def test_fetch_and_mutation_are_data_access_errors(self):
        assert issubclass(FetchError, DataAccessError)
        assert issubclass(MutationError, DataAccessError)

    def test_fetch_is_not_mutation(self):
        assert not issubclass(FetchError, MutationError)

    def test_row_not_found_is_mutation_error(self):
        err = RowNotFoundError(
            "missing", row_id="a-1", table="autonomous_actions", organization_id="org-1"
        )
        assert isinstance(err, MutationError)
        assert err.row_id == "a-1"
        assert err.table == "autonomous_actions"

    def test_row_not_found_catchable_as_mutation_error(self):
        with pytest.raises(MutationError):
            raise RowNotFoundError("missing", row_id="x")


class TestRealtimeErrors:

    def test_change_event_error_stores_type(self):
        err = ChangeEventError("unknown", event_type="TRUNCATE")
        assert err.event_type == "TRUNCATE"

    def test_subscription_error_stores_channel(self):
        err = SubscriptionError("failed", channel="activity-feed:org-1")
        assert err.channel == "activity-feed:org-1"
        assert isinstance(err, OpsboardError)
