"""
Unit tests for AddonWaiter.

Deadline behavior is checked against a fake clock that the patched sleep
advances, so the tests run instantly and can assert exact poll times.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from addonctl.addon.exceptions import (
    AddonNotFoundError,
    ConflictError,
    OperationCancelledError,
    TerminalFailureError,
    WaitTimeoutError,
)
from addonctl.addon.types import AddonHealth, AddonIssue, AddonRecord
from addonctl.addon.waiter import ADDON_ACTIVE_FAILURE, ADDON_ACTIVE_SUCCESS, AddonWaiter
from tests.unit_test.addon.fake_client import GONE


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    async def sleep(self, seconds, cancel_event=None):
        self.now += seconds


def _record(status, issues=None):
    return AddonRecord(
        cluster_name="cluster-a",
        addon_name="vpc-cni",
        status=status,
        health=AddonHealth(issues=issues or []),
    )


def _scripted_fetch(statuses, clock=None, poll_times=None):
    remaining = list(statuses)

    async def fetch():
        if poll_times is not None:
            poll_times.append(clock.now)
        status = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(status, AddonRecord):
            return status
        return _record(status)

    return fetch


class TestWaitForStatus:
    @pytest.mark.asyncio
    async def test_returns_on_success_status(self):
        clock = FakeClock()
        waiter = AddonWaiter(poll_interval=10, clock=clock)
        fetch = _scripted_fetch(["CREATING", "CREATING", "ACTIVE"])

        with patch("addonctl.addon.waiter.cancellable_sleep", side_effect=clock.sleep):
            result = await waiter.wait_for_status(fetch, ADDON_ACTIVE_SUCCESS, ADDON_ACTIVE_FAILURE, timeout=60)

        assert result.status == "ACTIVE"
        assert clock.now == 20

    @pytest.mark.asyncio
    async def test_accepts_enum_members(self):
        from addonctl.addon.types import AddonStatus

        waiter = AddonWaiter(poll_interval=0.01)
        result = await waiter.wait_for_status(
            _scripted_fetch(["ACTIVE"]), [AddonStatus.ACTIVE], [AddonStatus.CREATE_FAILED], timeout=1
        )
        assert result.status == "ACTIVE"

    @pytest.mark.asyncio
    async def test_timeout_is_never_early(self):
        clock = FakeClock()
        poll_times = []
        waiter = AddonWaiter(poll_interval=10, clock=clock)
        fetch = _scripted_fetch(["CREATING"], clock, poll_times)
        sleep = AsyncMock(side_effect=clock.sleep)

        with patch("addonctl.addon.waiter.cancellable_sleep", sleep):
            with pytest.raises(WaitTimeoutError) as exc_info:
                await waiter.wait_for_status(fetch, ADDON_ACTIVE_SUCCESS, ADDON_ACTIVE_FAILURE, timeout=25)

        assert clock.now >= 25
        # Last sleep is clamped to the time left, then one final poll at the deadline
        assert [c.args[0] for c in sleep.call_args_list] == [10, 10, 5]
        assert poll_times == [0, 10, 20, 25]
        assert exc_info.value.last_status == "CREATING"
        assert "timeout while waiting for state to become 'ACTIVE'" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_failure_status_is_terminal(self):
        issue = AddonIssue(code="InsufficientNumberOfReplicas", message="not enough replicas")
        waiter = AddonWaiter(poll_interval=0.01)
        fetch = _scripted_fetch(["CREATING", _record("CREATE_FAILED", [issue])])

        with pytest.raises(TerminalFailureError) as exc_info:
            await waiter.wait_for_status(fetch, ADDON_ACTIVE_SUCCESS, ADDON_ACTIVE_FAILURE, timeout=1)

        assert not isinstance(exc_info.value, ConflictError)
        assert exc_info.value.last_status == "CREATE_FAILED"
        assert exc_info.value.reasons == ["InsufficientNumberOfReplicas: not enough replicas"]
        assert "unexpected state 'CREATE_FAILED'" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_configuration_conflict(self):
        issue = AddonIssue(code="ConfigurationConflict", message="Conflicts found when trying to apply")
        waiter = AddonWaiter(poll_interval=0.01)
        fetch = _scripted_fetch([_record("DEGRADED", [issue])])

        with pytest.raises(ConflictError) as exc_info:
            await waiter.wait_for_status(fetch, ADDON_ACTIVE_SUCCESS, ADDON_ACTIVE_FAILURE, timeout=1)
        assert exc_info.value.last_status == "DEGRADED"

    @pytest.mark.asyncio
    async def test_not_found_is_success_for_delete(self):
        waiter = AddonWaiter(poll_interval=0.01)
        calls = []

        async def fetch():
            calls.append(1)
            if len(calls) < 3:
                return _record("DELETING")
            raise AddonNotFoundError("gone")

        result = await waiter.wait_for_status(fetch, (), {"DELETE_FAILED"}, timeout=1, not_found_is_success=True)
        assert result is None
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_not_found_propagates_by_default(self):
        waiter = AddonWaiter(poll_interval=0.01)
        fetch = AsyncMock(side_effect=AddonNotFoundError("gone"))

        with pytest.raises(AddonNotFoundError):
            await waiter.wait_for_status(fetch, ADDON_ACTIVE_SUCCESS, ADDON_ACTIVE_FAILURE, timeout=1)

    @pytest.mark.asyncio
    async def test_cancel_during_sleep(self):
        waiter = AddonWaiter(poll_interval=30)
        cancel_event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel_event.set)

        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(
                waiter.wait_for_status(
                    _scripted_fetch(["CREATING"]),
                    ADDON_ACTIVE_SUCCESS,
                    ADDON_ACTIVE_FAILURE,
                    timeout=120,
                    cancel_event=cancel_event,
                ),
                timeout=5,
            )


class TestAddonWaits:
    @pytest.mark.asyncio
    async def test_wait_addon_active(self, fake_client, seeded_record):
        fake_client.seed(seeded_record)
        fake_client.script("cluster-a", "vpc-cni", "CREATING", "ACTIVE")

        record = await AddonWaiter(poll_interval=0.01).wait_addon_active(fake_client, "cluster-a", "vpc-cni", 1)
        assert record.status == "ACTIVE"
        assert fake_client.count("describe_addon") == 2

    @pytest.mark.asyncio
    async def test_wait_addon_deleted(self, fake_client, seeded_record):
        fake_client.seed(seeded_record)
        fake_client.script("cluster-a", "vpc-cni", "DELETING", "DELETING", GONE)

        assert await AddonWaiter(poll_interval=0.01).wait_addon_deleted(fake_client, "cluster-a", "vpc-cni", 1) is None
        assert ("cluster-a", "vpc-cni") not in fake_client.addons

    @pytest.mark.asyncio
    async def test_wait_addon_deleted_failure(self, fake_client, seeded_record):
        fake_client.seed(seeded_record)
        fake_client.script("cluster-a", "vpc-cni", "DELETING", "DELETE_FAILED")

        with pytest.raises(TerminalFailureError) as exc_info:
            await AddonWaiter(poll_interval=0.01).wait_addon_deleted(fake_client, "cluster-a", "vpc-cni", 1)
        assert exc_info.value.last_status == "DELETE_FAILED"

    @pytest.mark.asyncio
    async def test_wait_update_successful(self, fake_client, seeded_record):
        from addonctl.addon.types import UpdateAddonRequest

        fake_client.seed(seeded_record)
        update = await fake_client.update_addon(
            UpdateAddonRequest(
                cluster_name="cluster-a", addon_name="vpc-cni", client_request_token="t", addon_version="v1.3.0"
            )
        )
        fake_client.script_update(update.id, "InProgress", "InProgress", "Successful")

        result = await AddonWaiter(poll_interval=0.01).wait_addon_update_successful(
            fake_client, "cluster-a", "vpc-cni", update.id, 1
        )
        assert result.status == "Successful"
        assert fake_client.count("describe_update") == 3

    @pytest.mark.asyncio
    async def test_already_cancelled(self, fake_client, seeded_record):
        fake_client.seed(seeded_record)
        cancel_event = asyncio.Event()
        cancel_event.set()

        with pytest.raises(OperationCancelledError):
            await AddonWaiter(poll_interval=0.01).wait_addon_active(
                fake_client, "cluster-a", "vpc-cni", 1, cancel_event=cancel_event
            )
        assert fake_client.count("describe_addon") == 0
