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
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

from addonctl.addon.exceptions import (
    AddonCreateWaitError,
    AddonDeleteWaitError,
    AddonUpdateWaitError,
    OperationCancelledError,
)
from addonctl.addon.lifecycle import AddonLifecycle, changed_fields
from addonctl.addon.types import AddonSpec
from addonctl.db.models import AddonState
from addonctl.db.ops import AddonStateOps

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    addon_id: str
    action: str
    success: bool = True
    error: Optional[str] = None
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class AddonReconciler:
    """Drives tracked add-on state towards the declared specs, one add-on at a time"""

    def __init__(self, lifecycle: AddonLifecycle, state_ops: Optional[AddonStateOps] = None):
        self.lifecycle = lifecycle
        self.state_ops = state_ops or AddonStateOps()

    async def reconcile_all(
        self, specs: Iterable[AddonSpec], prune: bool = True, cancel_event: Optional[asyncio.Event] = None
    ) -> List[ReconcileResult]:
        """
        Reconcile every declared add-on, then destroy tracked add-ons that are no longer declared

        Args:
            specs: declared add-ons
            prune: destroy tracked add-ons missing from ``specs``
            cancel_event: cancellation signal
        """
        results = []
        declared = set()
        for spec in specs:
            declared.add(spec.id)
            results.append(await self.reconcile(spec, cancel_event=cancel_event))

        if prune:
            for state in self.state_ops.query_states():
                if state.id not in declared:
                    results.append(await self.destroy(state.id, cancel_event=cancel_event))

        failed = [r for r in results if not r.success]
        logger.info(f"Reconciled {len(results)} add-ons, {len(failed)} failed")
        return results

    async def reconcile(self, spec: AddonSpec, cancel_event: Optional[asyncio.Event] = None) -> ReconcileResult:
        addon_id = spec.id
        try:
            return await self._reconcile(spec, cancel_event)
        except OperationCancelledError:
            raise
        except AddonCreateWaitError as e:
            return ReconcileResult(addon_id, "create", success=False, error=str(e), warning=e.warning)
        except Exception as e:
            logger.error(f"Failed to reconcile EKS Add-On ({addon_id}): {e}")
            return ReconcileResult(addon_id, "reconcile", success=False, error=str(e))

    async def _reconcile(self, spec: AddonSpec, cancel_event: Optional[asyncio.Event]) -> ReconcileResult:
        addon_id = spec.id
        state = self.state_ops.query_state(addon_id)
        action = "create"

        if state is not None and state.tainted:
            logger.info(f"EKS Add-On ({addon_id}) is tainted, deleting it before creating it again")
            await self._delete(state, cancel_event)
            state = None
            action = "recreate"

        if state is not None:
            record = await self.lifecycle.read(addon_id, cancel_event=cancel_event)
            if record is None:
                self.state_ops.delete_state(addon_id)
                action = "recreate"
            else:
                changed = changed_fields(record, spec)
                if changed:
                    logger.info(f"EKS Add-On ({addon_id}) drifted on {', '.join(changed)}, updating")
                    try:
                        record = await self.lifecycle.update(addon_id, record, spec, cancel_event=cancel_event)
                    except AddonUpdateWaitError as e:
                        state.error_message = str(e)
                        self.state_ops.save_state(state)
                        raise
                if record is not None:
                    to_set, to_remove = self.lifecycle.tags.diff(record.tags_all, spec.tags)
                    if to_set or to_remove:
                        logger.info(f"EKS Add-On ({addon_id}) tags drifted, updating")
                        record = await self.lifecycle.update_tags(
                            addon_id, record, spec.tags, cancel_event=cancel_event
                        )
                        changed.append("tags")
                state.apply_spec(spec)
                if record is not None:
                    state.apply_record(record)
                self.state_ops.save_state(state)
                return ReconcileResult(addon_id, "update" if changed else "noop")

        await self._create(spec, cancel_event)
        return ReconcileResult(addon_id, action)

    async def _create(self, spec: AddonSpec, cancel_event: Optional[asyncio.Event]):
        state = AddonState.from_spec(spec)

        def _track(addon_id: str):
            # Tracked from acceptance on; cleared once the add-on is confirmed active
            state.mark_tainted("create in progress")
            self.state_ops.save_state(state)

        try:
            record = await self.lifecycle.create(spec, on_accepted=_track, cancel_event=cancel_event)
        except AddonCreateWaitError as e:
            state.mark_tainted(str(e))
            self.state_ops.save_state(state)
            raise

        state.apply_record(record)
        self.state_ops.save_state(state)

    async def _delete(self, state: AddonState, cancel_event: Optional[asyncio.Event]):
        try:
            await self.lifecycle.delete(state.id, preserve=state.preserve, cancel_event=cancel_event)
        except AddonDeleteWaitError:
            # The local record is gone even when remote cleanup is still converging
            self.state_ops.delete_state(state.id)
            raise
        self.state_ops.delete_state(state.id)

    async def destroy(self, addon_id: str, cancel_event: Optional[asyncio.Event] = None) -> ReconcileResult:
        """Delete a tracked add-on and drop it from tracked state"""
        state = self.state_ops.query_state(addon_id)
        if state is None:
            return ReconcileResult(
                addon_id, "untracked", success=False, error=f"EKS Add-On ({addon_id}) is not tracked"
            )

        try:
            await self._delete(state, cancel_event)
        except OperationCancelledError:
            raise
        except AddonDeleteWaitError as e:
            return ReconcileResult(addon_id, "delete", success=False, error=str(e))
        except Exception as e:
            logger.error(f"Failed to delete EKS Add-On ({addon_id}): {e}")
            return ReconcileResult(addon_id, "delete", success=False, error=str(e))
        return ReconcileResult(addon_id, "delete")


def create_addon_reconciler(client_type: str = "http", **client_kwargs) -> AddonReconciler:
    """Build a reconciler wired from settings"""
    from addonctl.addon.client import create_addon_client
    from addonctl.addon.tags import TagBookkeeper
    from addonctl.addon.types import AddonTimeouts
    from addonctl.config import settings

    lifecycle = AddonLifecycle(
        client=create_addon_client(client_type, **client_kwargs),
        timeouts=AddonTimeouts.from_settings(settings),
        tag_bookkeeper=TagBookkeeper(default_tags=settings.default_tags),
    )
    return AddonReconciler(lifecycle)
