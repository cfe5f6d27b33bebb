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

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from urllib.parse import quote

import httpx

from addonctl.addon.exceptions import (
    AddonNotFoundError,
    InvalidParameterError,
    RemoteAPIError,
    ResourceInUseError,
)
from addonctl.addon.types import (
    AddonRecord,
    CreateAddonRequest,
    DeleteAddonRequest,
    UpdateAddonRequest,
    UpdateOperation,
)

logger = logging.getLogger(__name__)

ERROR_TYPES = {
    "ResourceNotFoundException": AddonNotFoundError,
    "InvalidParameterException": InvalidParameterError,
    "InvalidRequestException": InvalidParameterError,
    "ResourceInUseException": ResourceInUseError,
}


class AddonClient(ABC):
    """Abstract remote control plane for cluster add-ons"""

    @abstractmethod
    async def create_addon(self, request: CreateAddonRequest) -> Optional[AddonRecord]:
        """
        Submit an add-on create request

        Returns:
            The accepted add-on, if the remote side echoes it back
        """
        pass

    @abstractmethod
    async def describe_addon(self, cluster_name: str, addon_name: str) -> Optional[AddonRecord]:
        """
        Describe an add-on

        Raises:
            AddonNotFoundError: if the add-on does not exist
        """
        pass

    @abstractmethod
    async def update_addon(self, request: UpdateAddonRequest) -> UpdateOperation:
        """Submit an add-on update request, returning the asynchronous update it started"""
        pass

    @abstractmethod
    async def describe_update(self, cluster_name: str, addon_name: str, update_id: str) -> Optional[UpdateOperation]:
        """Describe an update sub-operation of an add-on"""
        pass

    @abstractmethod
    async def delete_addon(self, request: DeleteAddonRequest) -> Optional[AddonRecord]:
        """Submit an add-on delete request"""
        pass

    @abstractmethod
    async def tag_resource(self, resource_arn: str, tags: Dict[str, str]):
        """Add or overwrite tags on a resource"""
        pass

    @abstractmethod
    async def untag_resource(self, resource_arn: str, tag_keys: List[str]):
        pass

    async def close(self):
        pass


class HttpAddonClient(AddonClient):
    """AddonClient over the EKS REST API. Request signing is left to the transport."""

    def __init__(
        self,
        endpoint_url: str,
        api_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = httpx.AsyncClient(base_url=endpoint_url, headers=headers, timeout=timeout, transport=transport)

    @staticmethod
    def _addon_path(cluster_name: str, addon_name: Optional[str] = None) -> str:
        path = f"/clusters/{quote(cluster_name, safe='')}/addons"
        if addon_name is not None:
            path = f"{path}/{quote(addon_name, safe='')}"
        return path

    @staticmethod
    def _raise_for_error(response: httpx.Response):
        if response.is_success:
            return

        body = {}
        try:
            body = response.json()
        except ValueError:
            pass
        if not isinstance(body, dict):
            body = {}

        error_type = response.headers.get("x-amzn-ErrorType") or body.get("__type") or body.get("code") or ""
        # x-amzn-ErrorType may look like "ResourceNotFoundException:http://internal.amazon.com/..."
        error_type = error_type.split(":")[0].split("#")[-1]
        message = body.get("message") or body.get("Message") or response.text or response.reason_phrase

        if not error_type and response.status_code == 404:
            error_type = "ResourceNotFoundException"

        error_cls = ERROR_TYPES.get(error_type, RemoteAPIError)
        raise error_cls(message, code=error_type or None, status_code=response.status_code)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        logger.debug(f"{method} {path}")
        response = await self._client.request(method, path, **kwargs)
        self._raise_for_error(response)
        if not response.content:
            return {}
        return response.json()

    async def create_addon(self, request: CreateAddonRequest) -> Optional[AddonRecord]:
        data = await self._request("POST", self._addon_path(request.cluster_name), json=request.to_payload())
        addon = data.get("addon")
        return AddonRecord.model_validate(addon) if addon else None

    async def describe_addon(self, cluster_name: str, addon_name: str) -> Optional[AddonRecord]:
        data = await self._request("GET", self._addon_path(cluster_name, addon_name))
        addon = data.get("addon")
        return AddonRecord.model_validate(addon) if addon else None

    async def update_addon(self, request: UpdateAddonRequest) -> UpdateOperation:
        path = f"{self._addon_path(request.cluster_name, request.addon_name)}/update"
        data = await self._request("POST", path, json=request.to_payload())
        return UpdateOperation.model_validate(data["update"])

    async def describe_update(self, cluster_name: str, addon_name: str, update_id: str) -> Optional[UpdateOperation]:
        path = f"/clusters/{quote(cluster_name, safe='')}/updates/{quote(update_id, safe='')}"
        data = await self._request("GET", path, params={"addonName": addon_name})
        update = data.get("update")
        return UpdateOperation.model_validate(update) if update else None

    async def delete_addon(self, request: DeleteAddonRequest) -> Optional[AddonRecord]:
        path = self._addon_path(request.cluster_name, request.addon_name)
        data = await self._request("DELETE", path, params={"preserve": "true" if request.preserve else "false"})
        addon = data.get("addon")
        return AddonRecord.model_validate(addon) if addon else None

    async def tag_resource(self, resource_arn: str, tags: Dict[str, str]):
        await self._request("POST", f"/tags/{quote(resource_arn, safe='')}", json={"tags": tags})

    async def untag_resource(self, resource_arn: str, tag_keys: List[str]):
        await self._request("DELETE", f"/tags/{quote(resource_arn, safe='')}", params={"tagKeys": tag_keys})

    async def close(self):
        await self._client.aclose()


def create_addon_client(client_type: str = "http", **kwargs) -> AddonClient:
    """
    Factory function to create add-on client

    Args:
        client_type: Type of client ("http")
        **kwargs: Client arguments, defaults come from settings

    Returns:
        AddonClient instance
    """
    if client_type == "http":
        from addonctl.config import settings

        return HttpAddonClient(
            endpoint_url=kwargs.get("endpoint_url") or settings.endpoint_url,
            api_token=kwargs.get("api_token", settings.api_token),
            timeout=kwargs.get("timeout", settings.http_timeout),
            transport=kwargs.get("transport"),
        )
    raise ValueError(f"Unknown client type: {client_type}")
