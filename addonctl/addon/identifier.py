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

from typing import Tuple

from addonctl.addon.exceptions import MalformedIdentifierError

ADDON_ID_SEPARATOR = ":"


def encode_addon_id(cluster_name: str, addon_name: str) -> str:
    """Build the composite identifier ``<cluster_name>:<addon_name>``"""
    for part_name, part in (("cluster name", cluster_name), ("add-on name", addon_name)):
        if not part:
            raise MalformedIdentifierError(f"{part_name} must not be empty")
        if ADDON_ID_SEPARATOR in part:
            raise MalformedIdentifierError(
                f"{part_name} ({part}) must not contain the separator {ADDON_ID_SEPARATOR!r}"
            )
    return f"{cluster_name}{ADDON_ID_SEPARATOR}{addon_name}"


def decode_addon_id(addon_id: str) -> Tuple[str, str]:
    """Split a composite identifier back into (cluster_name, addon_name)"""
    parts = (addon_id or "").split(ADDON_ID_SEPARATOR)
    if len(parts) == 2 and parts[0] and parts[1]:
        return parts[0], parts[1]
    raise MalformedIdentifierError(
        f"unexpected format for ID ({addon_id}), expected cluster-name{ADDON_ID_SEPARATOR}addon-name"
    )
