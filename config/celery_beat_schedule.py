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
Celery Beat schedule configuration for declarative add-on reconciliation
"""

from addonctl.config import settings

CELERY_BEAT_SCHEDULE = {
    # Reconcile declared add-ons against the control plane
    'reconcile-addons': {
        'task': 'addonctl.tasks.reconcile_addons_task.reconcile_addons_task',
        'schedule': settings.reconcile_interval,
        'options': {
            # A pass can wait on slow add-ons; expire instead of piling up
            'expires': settings.reconcile_interval,
        }
    },
}

CELERY_TIMEZONE = 'UTC'
