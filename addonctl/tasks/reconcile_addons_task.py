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
from typing import Optional

from celery import current_app

from addonctl.addon.exceptions import AddonError

logger = logging.getLogger(__name__)


class TaskConfig:
    RETRY_COUNTDOWN_DESTROY = 60
    RETRY_MAX_RETRIES_DESTROY = 2


async def _reconcile(spec_path: str, prune: bool):
    from addonctl.addon.reconciler import create_addon_reconciler
    from addonctl.addon.spec_loader import load_specs
    from addonctl.config import init_db

    init_db()
    specs = load_specs(spec_path)
    reconciler = create_addon_reconciler()
    try:
        return await reconciler.reconcile_all(specs, prune=prune)
    finally:
        await reconciler.lifecycle.client.close()


async def _destroy(addon_id: str):
    from addonctl.addon.reconciler import create_addon_reconciler
    from addonctl.config import init_db

    init_db()
    reconciler = create_addon_reconciler()
    try:
        return await reconciler.destroy(addon_id)
    finally:
        await reconciler.lifecycle.client.close()


@current_app.task
def reconcile_addons_task(spec_path: Optional[str] = None, prune: bool = True):
    """Periodic task to reconcile declared add-ons with the control plane"""
    from addonctl.config import settings

    try:
        logger.info("Starting add-on reconciliation")
        results = asyncio.run(_reconcile(spec_path or settings.spec_path, prune))
        for result in results:
            if result.warning:
                logger.warning(f"EKS Add-On ({result.addon_id}): {result.warning}")
        logger.info("Add-on reconciliation completed")
        return [result.to_dict() for result in results]
    except Exception as e:
        logger.error(f"Add-on reconciliation failed: {e}", exc_info=True)
        raise


@current_app.task(bind=True)
def destroy_addon_task(self, addon_id: str):
    """
    Destroy add-on task entry point

    Args:
        addon_id: Add-on ID (cluster-name:addon-name)
    """
    try:
        result = asyncio.run(_destroy(addon_id))
        if not result.success and result.action != "untracked":
            raise AddonError(result.error)
        logger.info(f"EKS Add-On {addon_id} destroy finished: {result.action} success={result.success}")
        return result.to_dict()

    except Exception as e:
        logger.error(f"Add-on destroy failed for {addon_id}: {str(e)}")
        raise self.retry(
            exc=e,
            countdown=TaskConfig.RETRY_COUNTDOWN_DESTROY,
            max_retries=TaskConfig.RETRY_MAX_RETRIES_DESTROY,
        )
