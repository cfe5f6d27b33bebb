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

from typing import Dict, Iterable, List, Optional, Tuple

SYSTEM_TAG_PREFIXES = ("aws:",)


class TagBookkeeper:
    """Merges provider-wide default tags with resource tags"""

    def __init__(self, default_tags: Optional[Dict[str, str]] = None, ignore_tag_prefixes: Iterable[str] = ()):
        self.default_tags = dict(default_tags or {})
        self.ignore_tag_prefixes = tuple(SYSTEM_TAG_PREFIXES) + tuple(ignore_tag_prefixes)

    def _ignored(self, key: str) -> bool:
        return key.startswith(self.ignore_tag_prefixes)

    def tags_in(self, resource_tags: Optional[Dict[str, str]]) -> Dict[str, str]:
        """Tags to send on create; resource tags override defaults"""
        merged = {k: v for k, v in self.default_tags.items() if not self._ignored(k)}
        merged.update({k: v for k, v in (resource_tags or {}).items() if not self._ignored(k)})
        return merged

    def tags_out(self, remote_tags: Optional[Dict[str, str]]) -> Tuple[Dict[str, str], Dict[str, str]]:
        """
        Split the remote tag set into (tags, tags_all)

        tags_all is everything the remote side reports (minus ignored keys);
        tags drops the entries that only exist because of the default tags.
        """
        tags_all = {k: v for k, v in (remote_tags or {}).items() if not self._ignored(k)}
        tags = {k: v for k, v in tags_all.items() if self.default_tags.get(k) != v}
        return tags, tags_all

    def diff(
        self, remote_tags_all: Optional[Dict[str, str]], resource_tags: Optional[Dict[str, str]]
    ) -> Tuple[Dict[str, str], List[str]]:
        """
        Changes that bring the remote tag set in line with the declared one

        Returns:
            (tags to add or overwrite, tag keys to remove)
        """
        current = {k: v for k, v in (remote_tags_all or {}).items() if not self._ignored(k)}
        desired = self.tags_in(resource_tags)
        to_set = {k: v for k, v in desired.items() if current.get(k) != v}
        to_remove = sorted(k for k in current if k not in desired)
        return to_set, to_remove
