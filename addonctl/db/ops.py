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
from typing import Callable, List, Optional

from sqlmodel import Session, select

from addonctl.db.models import AddonState

logger = logging.getLogger(__name__)


class AddonStateOps:
    """Tracked-state operations; each call runs in its own short session"""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        if session_factory is None:
            from addonctl.config import SyncSessionLocal

            session_factory = SyncSessionLocal
        self._session_factory = session_factory

    def query_state(self, addon_id: str) -> Optional[AddonState]:
        with self._session_factory() as session:
            return session.get(AddonState, addon_id)

    def query_states(self) -> List[AddonState]:
        with self._session_factory() as session:
            stmt = select(AddonState).order_by(AddonState.id)
            return list(session.execute(stmt).scalars().all())

    def save_state(self, state: AddonState) -> AddonState:
        with self._session_factory() as session:
            state = session.merge(state)
            session.commit()
            session.refresh(state)
            return state

    def delete_state(self, addon_id: str) -> bool:
        with self._session_factory() as session:
            state = session.get(AddonState, addon_id)
            if not state:
                return False
            session.delete(state)
            session.commit()
            logger.debug(f"Removed tracked state for {addon_id}")
            return True
