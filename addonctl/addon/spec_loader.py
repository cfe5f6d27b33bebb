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
Load declared add-ons from YAML

Example:

    addons:
      - cluster_name: cluster-a
        addon_name: vpc-cni
        addon_version: v1.2.0
        service_account_role_arn: ${VPC_CNI_ROLE_ARN}
        resolve_conflicts_on_update: OVERWRITE
"""

import logging
import os
from pathlib import Path
from typing import Any, List, Union

import yaml
from pydantic import ValidationError

from addonctl.addon.types import AddonSpec

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    pass


def _replace_env_vars(obj: Any) -> Any:
    """Recursively replace ${VAR} with environment variables"""
    if isinstance(obj, str):
        if obj.startswith("${") and obj.endswith("}"):
            var_name = obj[2:-1]
            return os.environ.get(var_name, obj)
        return obj
    elif isinstance(obj, dict):
        return {k: _replace_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_replace_env_vars(item) for item in obj]
    return obj


def parse_specs(data: Any) -> List[AddonSpec]:
    if data is None:
        return []
    if not isinstance(data, dict) or not isinstance(data.get("addons", []), list):
        raise SpecLoadError("expected a mapping with an 'addons' list")

    specs = []
    seen = set()
    for index, item in enumerate(data.get("addons") or []):
        try:
            spec = AddonSpec.model_validate(_replace_env_vars(item))
        except ValidationError as e:
            raise SpecLoadError(f"invalid add-on at index {index}: {e}") from e
        if spec.id in seen:
            raise SpecLoadError(f"duplicate add-on {spec.id}")
        seen.add(spec.id)
        specs.append(spec)
    return specs


def load_specs(path: Union[str, Path]) -> List[AddonSpec]:
    """Load and validate add-on specs from a YAML file"""
    logger.info(f"Loading add-on specs from {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise SpecLoadError(f"cannot read {path}: {e}") from e
    return parse_specs(data)
