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
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Union

from tenacity import AsyncRetrying, retry_if_exception_type, stop_before_delay, wait_exponential

from addonctl.addon.cancellation import make_sleep, run_cancellable
from addonctl.addon.client import AddonClient
from addonctl.addon.exceptions import (
    AddonCreateWaitError,
    AddonDeleteWaitError,
    AddonNotFoundError,
    AddonOperationError,
    AddonUpdateWaitError,
    InvalidParameterError,
    OperationCancelledError,
    RemoteAPIError,
    TransientRemoteFailure,
    WaitError,
)
from addonctl.addon.finder import find_addon
from addonctl.addon.identifier import decode_addon_id, encode_addon_id
from addonctl.addon.tags import TagBookkeeper
from addonctl.addon.types import (
    AddonRecord,
    AddonSpec,
    AddonTimeouts,
    CreateAddonRequest,
    DeleteAddonRequest,
    ResolveConflicts,
    UpdateAddonRequest,
)
from addonctl.addon.waiter import AddonWaiter

logger = logging.getLogger(__name__)

# A previous add-on with the same name is still failing or being removed
TRANSIENT_CREATE_ERROR_SIGNATURES = ("CREATE_FAILED", "does not exist")

CREATE_WAIT_WARNING = (
    "Running the reconciliation again will remove the add-on and attempt to create it again, "
    "effectively purging previous add-on configuration"
)


def new_client_request_token() -> str:
    return f"addonctl-{uuid.uuid4().hex}"


def is_transient_create_error(err: Exception) -> bool:
    if not isinstance(err, InvalidParameterError):
        return False
    message = str(err)
    return any(signature in message for signature in TRANSIENT_CREATE_ERROR_SIGNATURES)


def _has_change(desired: Optional[str], prior: Optional[str], computed: bool) -> bool:
    # Computed fields left unset keep whatever the remote side assigned.
    if computed and desired is None:
        return False
    return (desired or "") != (prior or "")


def changed_fields(prior: Union[AddonSpec, AddonRecord], desired: AddonSpec) -> List[str]:
    """Names of the updatable fields whose desired value differs from the last known state"""
    changed = []
    if _has_change(desired.addon_version, prior.addon_version, computed=True):
        changed.append("addon_version")
    if _has_change(desired.configuration_values, prior.configuration_values, computed=True):
        changed.append("configuration_values")
    if _has_change(desired.service_account_role_arn, prior.service_account_role_arn, computed=False):
        changed.append("service_account_role_arn")
    return changed


class AddonLifecycle:
    """
    Create, read, update and delete one cluster add-on.

    Each call is a single sequential flow against the remote control plane:
    the request is issued, then the waiter polls until a terminal status.
    Callers serialize calls per add-on identifier.
    """

    def __init__(
        self,
        client: AddonClient,
        timeouts: Optional[AddonTimeouts] = None,
        tag_bookkeeper: Optional[TagBookkeeper] = None,
        waiter: Optional[AddonWaiter] = None,
    ):
        self.client = client
        self.timeouts = timeouts or AddonTimeouts()
        self.tags = tag_bookkeeper or TagBookkeeper()
        self.waiter = waiter or AddonWaiter(poll_interval=self.timeouts.poll_interval)

    async def create(
        self,
        spec: AddonSpec,
        on_accepted: Optional[Callable[[str], Union[None, Awaitable[None]]]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AddonRecord:
        """
        Create the add-on and wait until it is active

        Args:
            spec: desired add-on
            on_accepted: called with the identifier as soon as the remote side
                accepted the request, before waiting
            cancel_event: cancellation signal

        Raises:
            AddonOperationError: the create request was rejected
            AddonCreateWaitError: the add-on was created but did not become active
        """
        addon_id = encode_addon_id(spec.cluster_name, spec.addon_name)
        policy = spec.create_policy()
        tags = self.tags.tags_in(spec.tags)

        async def _attempt():
            # Each attempt is a new request, so it gets a new idempotency token
            request = CreateAddonRequest(
                cluster_name=spec.cluster_name,
                addon_name=spec.addon_name,
                client_request_token=new_client_request_token(),
                addon_version=spec.addon_version,
                configuration_values=spec.configuration_values or None,
                resolve_conflicts=policy.value,
                service_account_role_arn=spec.service_account_role_arn or None,
                tags=tags,
            )
            try:
                return await run_cancellable(self.client.create_addon(request), cancel_event)
            except InvalidParameterError as err:
                if is_transient_create_error(err):
                    logger.info(f"Create of EKS Add-On ({addon_id}) rejected while a previous instance settles: {err}")
                    raise TransientRemoteFailure(err) from err
                raise

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientRemoteFailure),
            # No attempt may start after the propagation timeout
            stop=stop_before_delay(self.timeouts.propagation),
            wait=wait_exponential(multiplier=1, min=self.timeouts.retry_min_wait, max=self.timeouts.retry_max_wait),
            sleep=make_sleep(cancel_event),
            reraise=True,
        )

        logger.debug(f"Creating EKS Add-On: {addon_id}")
        try:
            await retrying(_attempt)
        except OperationCancelledError:
            raise
        except Exception as err:
            raise AddonOperationError("creating", addon_id, err) from err

        logger.info(f"EKS Add-On ({addon_id}) create request accepted")
        if on_accepted is not None:
            result = on_accepted(addon_id)
            if asyncio.iscoroutine(result):
                await result

        try:
            await self.waiter.wait_addon_active(
                self.client, spec.cluster_name, spec.addon_name, self.timeouts.create, cancel_event
            )
        except (WaitError, RemoteAPIError) as err:
            # Creating without OVERWRITE fails when an unmanaged copy of the add-on
            # is already deployed with conflicting configuration. The add-on stays
            # tracked as tainted and is recreated on the next pass, which drops
            # whatever configuration conflicted.
            logger.warning(f"EKS Add-On ({addon_id}): {CREATE_WAIT_WARNING}")
            raise AddonCreateWaitError(addon_id, err, CREATE_WAIT_WARNING) from err

        return await self.read(addon_id, is_new_resource=True, cancel_event=cancel_event)

    async def read(
        self, addon_id: str, is_new_resource: bool = False, cancel_event: Optional[asyncio.Event] = None
    ) -> Optional[AddonRecord]:
        """
        Refresh the add-on from the remote side

        Returns:
            The add-on, or None when an established add-on was deleted out of
            band and should be dropped from tracked state
        """
        cluster_name, addon_name = decode_addon_id(addon_id)

        try:
            record = await find_addon(self.client, cluster_name, addon_name, cancel_event)
        except AddonNotFoundError as err:
            if not is_new_resource:
                logger.warning(f"EKS Add-On ({addon_id}) not found, removing from state")
                return None
            raise AddonOperationError("reading", addon_id, err) from err
        except OperationCancelledError:
            raise
        except Exception as err:
            raise AddonOperationError("reading", addon_id, err) from err

        record.tags, record.tags_all = self.tags.tags_out(record.tags)
        return record

    async def update(
        self,
        addon_id: str,
        prior: Union[AddonSpec, AddonRecord],
        desired: AddonSpec,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[AddonRecord]:
        """
        Push version, configuration and role changes and wait for the update to finish

        Args:
            addon_id: composite identifier
            prior: last known state
            desired: desired state

        Raises:
            AddonOperationError: the update request was rejected
            AddonUpdateWaitError: the update did not succeed
        """
        cluster_name, addon_name = decode_addon_id(addon_id)

        changed = changed_fields(prior, desired)
        version_changed = "addon_version" in changed
        config_changed = "configuration_values" in changed
        role_changed = "service_account_role_arn" in changed

        if not changed:
            logger.debug(f"EKS Add-On ({addon_id}) has no changes to apply")
            return await self.read(addon_id, cancel_event=cancel_event)

        policy = desired.update_policy()
        request = UpdateAddonRequest(
            cluster_name=cluster_name,
            addon_name=addon_name,
            client_request_token=new_client_request_token(),
            addon_version=desired.addon_version if version_changed else None,
            configuration_values=(desired.configuration_values or "") if config_changed else None,
            resolve_conflicts=policy.value,
        )
        # Without an explicit role the add-on falls back to the node role's
        # permissions, so the role is always sent when set or changing.
        if role_changed or desired.service_account_role_arn:
            request.service_account_role_arn = desired.service_account_role_arn or ""

        logger.debug(f"Updating EKS Add-On: {addon_id}")
        try:
            update = await run_cancellable(self.client.update_addon(request), cancel_event)
        except OperationCancelledError:
            raise
        except Exception as err:
            raise AddonOperationError("updating", addon_id, err) from err

        logger.info(f"EKS Add-On ({addon_id}) update {update.id} started")
        try:
            await self.waiter.wait_addon_update_successful(
                self.client, cluster_name, addon_name, update.id, self.timeouts.update, cancel_event
            )
        except (WaitError, RemoteAPIError) as err:
            remediation = None
            if not policy.is_overwrite:
                # A version change without OVERWRITE fails on configuration conflicts
                remediation = f'Consider setting attribute "{policy.attribute}" to "{ResolveConflicts.OVERWRITE.value}"'
            raise AddonUpdateWaitError(addon_id, update.id, err, remediation) from err

        return await self.read(addon_id, cancel_event=cancel_event)

    async def update_tags(
        self,
        addon_id: str,
        record: AddonRecord,
        tags: Optional[Dict[str, str]],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[AddonRecord]:
        """
        Bring the remote tags of the add-on in line with ``tags`` plus the default tags

        Args:
            addon_id: composite identifier
            record: last read remote state, its ``tags_all`` is the current tag set
            tags: declared resource tags

        Raises:
            AddonOperationError: a tag request was rejected
        """
        to_set, to_remove = self.tags.diff(record.tags_all, tags)
        if not to_set and not to_remove:
            return record

        if not record.addon_arn:
            raise AddonOperationError("updating tags of", addon_id, ValueError("add-on ARN is unknown"))

        logger.debug(f"Updating tags of EKS Add-On {addon_id}: set {sorted(to_set)}, remove {to_remove}")
        try:
            if to_remove:
                await run_cancellable(self.client.untag_resource(record.addon_arn, to_remove), cancel_event)
            if to_set:
                await run_cancellable(self.client.tag_resource(record.addon_arn, to_set), cancel_event)
        except OperationCancelledError:
            raise
        except Exception as err:
            raise AddonOperationError("updating tags of", addon_id, err) from err

        return await self.read(addon_id, cancel_event=cancel_event)

    async def delete(self, addon_id: str, preserve: bool = False, cancel_event: Optional[asyncio.Event] = None):
        """
        Delete the add-on and wait until it is gone

        With ``preserve`` the remote side only detaches the add-on and leaves
        its managed objects running in the cluster.

        Raises:
            AddonOperationError: the delete request was rejected
            AddonDeleteWaitError: the add-on did not disappear; tracking is released anyway
        """
        cluster_name, addon_name = decode_addon_id(addon_id)
        request = DeleteAddonRequest(cluster_name=cluster_name, addon_name=addon_name, preserve=preserve)

        logger.debug(f"Deleting EKS Add-On: {addon_id}")
        try:
            await run_cancellable(self.client.delete_addon(request), cancel_event)
        except AddonNotFoundError:
            logger.info(f"EKS Add-On ({addon_id}) already deleted")
            return
        except OperationCancelledError:
            raise
        except Exception as err:
            raise AddonOperationError("deleting", addon_id, err) from err

        try:
            await self.waiter.wait_addon_deleted(
                self.client, cluster_name, addon_name, self.timeouts.delete, cancel_event
            )
        except (WaitError, RemoteAPIError) as err:
            logger.error(f"EKS Add-On ({addon_id}) delete did not converge: {err}")
            raise AddonDeleteWaitError(addon_id, err) from err

        logger.info(f"EKS Add-On ({addon_id}) deleted")
