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

from typing import Optional


class AddonError(Exception):
    """Base class for all add-on lifecycle errors."""


class MalformedIdentifierError(AddonError, ValueError):
    """Composite identifier cannot be encoded or decoded."""


class RemoteAPIError(AddonError):
    """Error returned by the remote control plane."""

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def __str__(self) -> str:
        if self.code:
            return f"{self.code}: {self.message}"
        return self.message


class AddonNotFoundError(RemoteAPIError):
    """The add-on (or update) does not exist on the remote side."""


class InvalidParameterError(RemoteAPIError):
    pass


class ResourceInUseError(RemoteAPIError):
    pass


class TransientRemoteFailure(AddonError):
    """A create attempt was rejected because a previous instance is still being cleaned up."""

    def __init__(self, cause: Exception):
        super().__init__(str(cause))
        self.cause = cause


class OperationCancelledError(AddonError):
    """The cancellation signal was set while an operation was in flight."""


class WaitError(AddonError):
    """Base class for convergence wait failures, carries the last observed status."""

    def __init__(self, message: str, last_status: Optional[str] = None):
        super().__init__(message)
        self.last_status = last_status


class WaitTimeoutError(WaitError):
    pass


class TerminalFailureError(WaitError):
    def __init__(self, message: str, last_status: Optional[str] = None, reasons: Optional[list] = None):
        super().__init__(message, last_status)
        self.reasons = reasons or []


class ConflictError(TerminalFailureError):
    """Terminal failure caused by a configuration conflict with out-of-band changes."""


class AddonOperationError(AddonError):
    """A remote call failed; wraps the cause with the operation and identifier."""

    def __init__(self, operation: str, addon_id: str, cause: Exception, detail: Optional[str] = None):
        message = f"{operation} EKS Add-On ({addon_id}): {cause}"
        if detail:
            message = f"{message}. {detail}"
        super().__init__(message)
        self.operation = operation
        self.addon_id = addon_id
        self.cause = cause


class AddonCreateWaitError(AddonOperationError):
    """The create request was accepted but the add-on never became active.

    The identifier stays tracked (tainted) so that the next reconciliation
    deletes and recreates the add-on.
    """

    tainted = True

    def __init__(self, addon_id: str, cause: Exception, warning: str):
        super().__init__("waiting for create of", addon_id, cause)
        self.warning = warning


class AddonUpdateWaitError(AddonOperationError):
    def __init__(self, addon_id: str, update_id: str, cause: Exception, remediation: Optional[str] = None):
        super().__init__(f"waiting for update ({update_id}) of", addon_id, cause, detail=remediation)
        self.update_id = update_id
        self.remediation = remediation


class AddonDeleteWaitError(AddonOperationError):
    """Remote cleanup did not converge; local tracking is released anyway."""

    tracking_released = True

    def __init__(self, addon_id: str, cause: Exception):
        super().__init__("waiting for delete of", addon_id, cause)
