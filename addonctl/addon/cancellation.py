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

"""
Cooperative cancellation helpers.

Every remote call and every poll sleep takes an optional ``asyncio.Event``.
Setting the event aborts the in-flight await and raises
OperationCancelledError, which callers can tell apart from a wait timeout.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from addonctl.addon.exceptions import OperationCancelledError

T = TypeVar("T")


def check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError("operation cancelled")


async def run_cancellable(awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event] = None) -> T:
    """Await ``awaitable`` unless the cancellation event fires first"""
    if cancel_event is None:
        return await awaitable

    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelledError("operation cancelled")

    task = asyncio.ensure_future(awaitable)
    cancel_waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({task, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        cancel_waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    raise OperationCancelledError("operation cancelled")


async def cancellable_sleep(seconds: float, cancel_event: Optional[asyncio.Event] = None) -> None:
    """Sleep for ``seconds``, returning early with OperationCancelledError when cancelled"""
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return

    check_cancelled(cancel_event)
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise OperationCancelledError("operation cancelled")


def make_sleep(cancel_event: Optional[asyncio.Event]) -> Callable[[float], Awaitable[None]]:
    """Sleep function suitable for tenacity's ``sleep`` argument"""

    async def _sleep(seconds: float) -> None:
        await cancellable_sleep(seconds, cancel_event)

    return _sleep
