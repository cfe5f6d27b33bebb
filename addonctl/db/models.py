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

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel, UniqueConstraint

from addonctl.addon.types import AddonRecord, AddonSpec


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Remote timestamps without an offset are UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AddonState(SQLModel, table=True):
    """Tracked state of one add-on: its identifier plus the mirrored field values"""

    __tablename__ = "addon_state"
    __table_args__ = (UniqueConstraint("cluster_name", "addon_name", name="uq_addon_state_cluster_addon"),)

    id: str = Field(primary_key=True, max_length=512)
    cluster_name: str = Field(max_length=100)
    addon_name: str = Field(max_length=256)
    addon_version: Optional[str] = Field(default=None, max_length=128)
    configuration_values: Optional[str] = None
    service_account_role_arn: Optional[str] = Field(default=None, max_length=2048)
    resolve_conflicts: Optional[str] = Field(default=None, max_length=16)
    resolve_conflicts_on_create: Optional[str] = Field(default=None, max_length=16)
    resolve_conflicts_on_update: Optional[str] = Field(default=None, max_length=16)
    preserve: bool = False
    arn: Optional[str] = Field(default=None, max_length=2048)
    status: Optional[str] = Field(default=None, max_length=32)
    created_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    modified_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    tags: Optional[dict] = Field(default_factory=dict, sa_column=Column(JSON))
    tags_all: Optional[dict] = Field(default_factory=dict, sa_column=Column(JSON))
    # Accepted by the remote side but never confirmed active; recreated on the next pass
    tainted: bool = False
    error_message: Optional[str] = None
    gmt_created: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
    gmt_updated: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
    gmt_last_reconciled: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))

    @classmethod
    def from_spec(cls, spec: AddonSpec) -> "AddonState":
        state = cls(id=spec.id, cluster_name=spec.cluster_name, addon_name=spec.addon_name)
        state.apply_spec(spec)
        return state

    def apply_spec(self, spec: AddonSpec):
        """Copy the user-declared, non-computed settings"""
        self.service_account_role_arn = spec.service_account_role_arn
        self.resolve_conflicts = spec.resolve_conflicts.value if spec.resolve_conflicts else None
        self.resolve_conflicts_on_create = (
            spec.resolve_conflicts_on_create.value if spec.resolve_conflicts_on_create else None
        )
        self.resolve_conflicts_on_update = (
            spec.resolve_conflicts_on_update.value if spec.resolve_conflicts_on_update else None
        )
        self.preserve = spec.preserve
        if spec.addon_version is not None:
            self.addon_version = spec.addon_version
        if spec.configuration_values is not None:
            self.configuration_values = spec.configuration_values
        self.gmt_updated = utc_now()

    def apply_record(self, record: AddonRecord):
        """Mirror the remote read-back into tracked state"""
        self.addon_version = record.addon_version
        self.configuration_values = record.configuration_values
        self.service_account_role_arn = record.service_account_role_arn
        self.arn = record.addon_arn
        self.status = record.status
        self.created_at = as_utc(record.created_at)
        self.modified_at = as_utc(record.modified_at)
        self.tags = dict(record.tags)
        self.tags_all = dict(record.tags_all)
        self.tainted = False
        self.error_message = None
        self.gmt_updated = utc_now()
        self.gmt_last_reconciled = utc_now()

    def mark_tainted(self, error_message: Optional[str] = None):
        self.tainted = True
        self.error_message = error_message
        self.gmt_updated = utc_now()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cluster_name": self.cluster_name,
            "addon_name": self.addon_name,
            "addon_version": self.addon_version,
            "configuration_values": self.configuration_values,
            "service_account_role_arn": self.service_account_role_arn,
            "preserve": self.preserve,
            "arn": self.arn,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "modified_at": self.modified_at.isoformat() if self.modified_at else None,
            "tags": self.tags or {},
            "tags_all": self.tags_all or {},
            "tainted": self.tainted,
            "error_message": self.error_message,
        }
