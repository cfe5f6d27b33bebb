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
Cluster add-on lifecycle management

Key components:
- AddonLifecycle: create/read/update/delete one add-on against the remote control plane
- AddonWaiter: polls until an add-on or one of its updates reaches a terminal status
- AddonReconciler: drives tracked state towards declared specs

The composite identifier ``<cluster_name>:<addon_name>`` is the only
persisted identity of an add-on.
"""

from .identifier import decode_addon_id, encode_addon_id
from .lifecycle import AddonLifecycle
from .types import AddonRecord, AddonSpec, AddonTimeouts, ResolveConflicts
from .waiter import AddonWaiter

__all__ = [
    "AddonLifecycle",
    "AddonRecord",
    "AddonSpec",
    "AddonTimeouts",
    "AddonWaiter",
    "ResolveConflicts",
    "decode_addon_id",
    "encode_addon_id",
]
