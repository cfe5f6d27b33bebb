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
from typing import Optional

from addonctl.addon.cancellation import run_cancellable
from addonctl.addon.client import AddonClient
from addonctl.addon.exceptions import AddonNotFoundError
from addonctl.addon.types import AddonRecord, UpdateOperation


async def find_addon(
    client: AddonClient, cluster_name: str, addon_name: str, cancel_event: Optional[asyncio.Event] = None
) -> AddonRecord:
    """Read the current remote add-on, raising AddonNotFoundError if it is gone"""
    addon = await run_cancellable(client.describe_addon(cluster_name, addon_name), cancel_event)
    if addon is None:
        raise AddonNotFoundError(f"add-on {addon_name} not found in cluster {cluster_name}: empty result")
    return addon


async def find_addon_update(
    client: AddonClient,
    cluster_name: str,
    addon_name: str,
    update_id: str,
    cancel_event: Optional[asyncio.Event] = None,
) -> UpdateOperation:
    update = await run_cancellable(client.describe_update(cluster_name, addon_name, update_id), cancel_event)
    if update is None:
        raise AddonNotFoundError(f"update {update_id} of add-on {cluster_name}:{addon_name} not found: empty result")
    return update
