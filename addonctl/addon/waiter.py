# Copyright 2025 ApeCloud, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, FrozenSet, Iterable, Optional

from addonctl.addon.cancellation import cancellable_sleep
from addonctl.addon.client import AddonClient
from addonctl.addon.exceptions import AddonNotFoundError, ConflictError, TerminalFailureError, WaitTimeoutError
from addonctl.addon.finder import find_addon, find_addon_update
from addonctl.addon.types import AddonRecord, AddonStatus, UpdateOperation, UpdateStatus

logger = logging.getLogger(__name__)

ADDON_ACTIVE_SUCCESS = frozenset({AddonStatus.ACTIVE.value})
ADDON_ACTIVE_FAILURE = frozenset({AddonStatus.CREATE_FAILED.value, AddonStatus.DEGRADED.value})
ADDON_DELETED_FAILURE = frozenset({AddonStatus.DELETE_FAILED.value})
UPDATE_SUCCESS = frozenset({UpdateStatus.SUCCESSFUL.value})
UPDATE_FAILURE = frozenset({UpdateStatus.FAILED.value, UpdateStatus.CANCELLED.value})


def _status_values(statuses: Iterable[Any]) -> FrozenSet[str]:
    return frozenset(str(getattr(s, "value", s)) for s in statuses)


class AddonWaiter:
    """
    Polls the remote side until an add-on (or one of its updates) reaches a terminal status.

    The remote control plane has no push notifications, so every wait is a
    bounded poll loop whose sleeps honor the cancellation event.
    """

    def __init__(self, poll_interval: float = 10.0, clock: Callable[[], float] = time.monotonic):
        self.poll_interval = poll_interval
        self._clock = clock

    async def wait_for_status(
        self,
        fetch: Callable[[], Awaitable[Any]],
        success: Iterable[Any],
        failure: Iterable[Any],
        timeout: float,
        poll_interval: Optional[float] = None,
        not_found_is_success: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        """
        Poll ``fetch`` until its status is in ``success`` or ``failure``

        Args:
            fetch: coroutine function returning an object with ``status``,
                ``failure_reasons()`` and ``has_conflict()``
            success: statuses that end the wait successfully
            failure: statuses that end the wait with TerminalFailureError
            timeout: overall time limit in seconds
            poll_interval: delay between polls, defaults to the waiter's interval
            not_found_is_success: treat AddonNotFoundError as success (delete waits)
            cancel_event: cancellation signal

        Returns:
            The last fetched object, or None when the object is gone and
            ``not_found_is_success`` is set

        Raises:
            WaitTimeoutError: the deadline passed without a terminal status
            TerminalFailureError: a failure status was reached (ConflictError for configuration conflicts)
            OperationCancelledError: the cancellation event was set
        """
        success = _status_values(success)
        failure = _status_values(failure)
        interval = self.poll_interval if poll_interval is None else poll_interval
        deadline = self._clock() + timeout
        last_status = None

        while True:
            try:
                current = await fetch()
            except AddonNotFoundError:
                if not_found_is_success:
                    return None
                raise

            last_status = current.status
            if last_status in success:
                return current

            if last_status in failure:
                reasons = current.failure_reasons()
                message = f"unexpected state '{last_status}', wanted target '{', '.join(sorted(success))}'"
                if reasons:
                    message = f"{message}. last error: {'; '.join(reasons)}"
                error_cls = ConflictError if current.has_conflict() else TerminalFailureError
                raise error_cls(message, last_status=last_status, reasons=reasons)

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise WaitTimeoutError(
                    f"timeout while waiting for state to become '{', '.join(sorted(success)) or 'deleted'}' "
                    f"(last state: '{last_status}', timeout: {timeout}s)",
                    last_status=last_status,
                )

            logger.debug(f"Status is {last_status}, polling again in {min(interval, remaining):.1f}s")
            await cancellable_sleep(min(interval, remaining), cancel_event)

    async def wait_addon_active(
        self,
        client: AddonClient,
        cluster_name: str,
        addon_name: str,
        timeout: float,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AddonRecord:
        return await self.wait_for_status(
            lambda: find_addon(client, cluster_name, addon_name, cancel_event),
            ADDON_ACTIVE_SUCCESS,
            ADDON_ACTIVE_FAILURE,
            timeout,
            cancel_event=cancel_event,
        )

    async def wait_addon_deleted(
        self,
        client: AddonClient,
        cluster_name: str,
        addon_name: str,
        timeout: float,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        await self.wait_for_status(
            lambda: find_addon(client, cluster_name, addon_name, cancel_event),
            (),
            ADDON_DELETED_FAILURE,
            timeout,
            not_found_is_success=True,
            cancel_event=cancel_event,
        )

    async def wait_addon_update_successful(
        self,
        client: AddonClient,
        cluster_name: str,
        addon_name: str,
        update_id: str,
        timeout: float,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> UpdateOperation:
        return await self.wait_for_status(
            lambda: find_addon_update(client, cluster_name, addon_name, update_id, cancel_event),
            UPDATE_SUCCESS,
            UPDATE_FAILURE,
            timeout,
            cancel_event=cancel_event,
        )
