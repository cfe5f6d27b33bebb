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
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from addonctl.addon.identifier import ADDON_ID_SEPARATOR, encode_addon_id

logger = logging.getLogger(__name__)

# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
ADDON_VERSION_PATTERN = re.compile(
    r"^v(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*)(?:\.(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
CLUSTER_NAME_PATTERN = re.compile(r"^[0-9A-Za-z][A-Za-z0-9\-_]*$")
ARN_PATTERN = re.compile(r"^arn:[^:\s]+:[^:\s]+:[^:\s]*:[^:\s]*:\S+$")

CONFIGURATION_CONFLICT = "ConfigurationConflict"


class AddonStatus(str, Enum):
    CREATING = "CREATING"
    ACTIVE = "ACTIVE"
    CREATE_FAILED = "CREATE_FAILED"
    UPDATING = "UPDATING"
    UPDATE_FAILED = "UPDATE_FAILED"
    DELETING = "DELETING"
    DELETE_FAILED = "DELETE_FAILED"
    DEGRADED = "DEGRADED"


class UpdateStatus(str, Enum):
    IN_PROGRESS = "InProgress"
    FAILED = "Failed"
    CANCELLED = "Cancelled"
    SUCCESSFUL = "Successful"


class ResolveConflicts(str, Enum):
    NONE = "NONE"
    OVERWRITE = "OVERWRITE"
    PRESERVE = "PRESERVE"


@dataclass(frozen=True)
class EffectivePolicy:
    """Conflict-resolution policy for one operation, and the attribute it came from"""

    attribute: str
    value: Optional[ResolveConflicts] = None

    @property
    def is_overwrite(self) -> bool:
        return self.value == ResolveConflicts.OVERWRITE


@dataclass
class AddonTimeouts:
    """Timeouts and retry waits in seconds"""

    create: float = 20 * 60
    update: float = 20 * 60
    delete: float = 40 * 60
    propagation: float = 2 * 60
    poll_interval: float = 10.0
    retry_min_wait: float = 1.0
    retry_max_wait: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "AddonTimeouts":
        return cls(
            create=settings.create_timeout,
            update=settings.update_timeout,
            delete=settings.delete_timeout,
            propagation=settings.propagation_timeout,
            poll_interval=settings.poll_interval,
        )


class AddonSpec(BaseModel):
    """Desired state of one add-on, as declared by the user"""

    cluster_name: str = Field(min_length=1, max_length=100)
    addon_name: str = Field(min_length=1)
    addon_version: Optional[str] = None
    configuration_values: Optional[str] = None
    service_account_role_arn: Optional[str] = None
    resolve_conflicts: Optional[ResolveConflicts] = None
    resolve_conflicts_on_create: Optional[ResolveConflicts] = None
    resolve_conflicts_on_update: Optional[ResolveConflicts] = None
    preserve: bool = False
    tags: Dict[str, str] = Field(default_factory=dict)

    @field_validator("cluster_name")
    @classmethod
    def _check_cluster_name(cls, v: str) -> str:
        if not CLUSTER_NAME_PATTERN.match(v):
            raise ValueError(f"invalid cluster name: {v}")
        return v

    @field_validator("addon_name")
    @classmethod
    def _check_addon_name(cls, v: str) -> str:
        if ADDON_ID_SEPARATOR in v:
            raise ValueError(f"add-on name must not contain {ADDON_ID_SEPARATOR!r}: {v}")
        return v

    @field_validator("addon_version")
    @classmethod
    def _check_addon_version(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not ADDON_VERSION_PATTERN.match(v):
            raise ValueError("must follow semantic version format")
        return v

    @field_validator("service_account_role_arn")
    @classmethod
    def _check_role_arn(cls, v: Optional[str]) -> Optional[str]:
        if v and not ARN_PATTERN.match(v):
            raise ValueError(f"invalid ARN: {v}")
        return v

    @field_validator("resolve_conflicts_on_create")
    @classmethod
    def _check_create_policy(cls, v: Optional[ResolveConflicts]) -> Optional[ResolveConflicts]:
        if v is not None and v not in (ResolveConflicts.NONE, ResolveConflicts.OVERWRITE):
            raise ValueError(f"resolve_conflicts_on_create must be NONE or OVERWRITE, got {v.value}")
        return v

    @model_validator(mode="after")
    def _check_policy_fields(self) -> "AddonSpec":
        # The legacy field wins when both forms are set.
        if self.resolve_conflicts is not None:
            if self.resolve_conflicts_on_create is not None or self.resolve_conflicts_on_update is not None:
                logger.warning(
                    f"EKS Add-On ({self.cluster_name}:{self.addon_name}): resolve_conflicts is set together with "
                    f"resolve_conflicts_on_create/resolve_conflicts_on_update, using resolve_conflicts"
                )
            if self.resolve_conflicts == ResolveConflicts.PRESERVE:
                logger.warning(
                    'The "resolve_conflicts" attribute can\'t be set to "PRESERVE" on initial resource creation. '
                    'Use "resolve_conflicts_on_create" and/or "resolve_conflicts_on_update" instead'
                )
        return self

    @property
    def id(self) -> str:
        return encode_addon_id(self.cluster_name, self.addon_name)

    def create_policy(self) -> EffectivePolicy:
        if self.resolve_conflicts is not None:
            return EffectivePolicy("resolve_conflicts", self.resolve_conflicts)
        return EffectivePolicy("resolve_conflicts_on_create", self.resolve_conflicts_on_create)

    def update_policy(self) -> EffectivePolicy:
        if self.resolve_conflicts is not None:
            return EffectivePolicy("resolve_conflicts", self.resolve_conflicts)
        return EffectivePolicy("resolve_conflicts_on_update", self.resolve_conflicts_on_update)


class _RemoteModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AddonIssue(_RemoteModel):
    code: Optional[str] = None
    message: Optional[str] = None
    resource_ids: List[str] = Field(default_factory=list, alias="resourceIds")


class AddonHealth(_RemoteModel):
    issues: List[AddonIssue] = Field(default_factory=list)


class AddonRecord(_RemoteModel):
    """Add-on as reported by the remote control plane"""

    addon_name: str = Field(alias="addonName")
    cluster_name: str = Field(alias="clusterName")
    status: Optional[str] = None
    addon_version: Optional[str] = Field(default=None, alias="addonVersion")
    addon_arn: Optional[str] = Field(default=None, alias="addonArn")
    configuration_values: Optional[str] = Field(default=None, alias="configurationValues")
    service_account_role_arn: Optional[str] = Field(default=None, alias="serviceAccountRoleArn")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    modified_at: Optional[datetime] = Field(default=None, alias="modifiedAt")
    tags: Dict[str, str] = Field(default_factory=dict)
    # Full remote tag set; ``tags`` is narrowed to the user-managed subset after a read
    tags_all: Dict[str, str] = Field(default_factory=dict, alias="tagsAll")
    health: AddonHealth = Field(default_factory=AddonHealth)

    @property
    def id(self) -> str:
        return encode_addon_id(self.cluster_name, self.addon_name)

    def failure_reasons(self) -> List[str]:
        return [f"{issue.code}: {issue.message}" for issue in self.health.issues]

    def has_conflict(self) -> bool:
        return any(issue.code == CONFIGURATION_CONFLICT for issue in self.health.issues)


class UpdateErrorDetail(_RemoteModel):
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    resource_ids: List[str] = Field(default_factory=list, alias="resourceIds")


class UpdateOperation(_RemoteModel):
    """Asynchronous update sub-operation of an add-on"""

    id: str
    status: Optional[str] = None
    type: Optional[str] = None
    errors: List[UpdateErrorDetail] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    def failure_reasons(self) -> List[str]:
        return [f"{err.error_code}: {err.error_message}" for err in self.errors]

    def has_conflict(self) -> bool:
        return any(err.error_code == CONFIGURATION_CONFLICT for err in self.errors)


class CreateAddonRequest(_RemoteModel):
    cluster_name: str = Field(alias="clusterName", exclude=True)
    addon_name: str = Field(alias="addonName")
    client_request_token: str = Field(alias="clientRequestToken")
    addon_version: Optional[str] = Field(default=None, alias="addonVersion")
    configuration_values: Optional[str] = Field(default=None, alias="configurationValues")
    resolve_conflicts: Optional[ResolveConflicts] = Field(default=None, alias="resolveConflicts")
    service_account_role_arn: Optional[str] = Field(default=None, alias="serviceAccountRoleArn")
    tags: Dict[str, str] = Field(default_factory=dict)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UpdateAddonRequest(_RemoteModel):
    cluster_name: str = Field(alias="clusterName", exclude=True)
    addon_name: str = Field(alias="addonName", exclude=True)
    client_request_token: str = Field(alias="clientRequestToken")
    addon_version: Optional[str] = Field(default=None, alias="addonVersion")
    configuration_values: Optional[str] = Field(default=None, alias="configurationValues")
    resolve_conflicts: Optional[ResolveConflicts] = Field(default=None, alias="resolveConflicts")
    service_account_role_arn: Optional[str] = Field(default=None, alias="serviceAccountRoleArn")

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DeleteAddonRequest(_RemoteModel):
    cluster_name: str = Field(alias="clusterName")
    addon_name: str = Field(alias="addonName")
    preserve: bool = False
