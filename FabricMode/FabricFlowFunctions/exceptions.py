# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Exception hierarchy for the fabric upgrade flow.

Only TransientSessionError is ever retried, and only by the activation
sequencer and the reachability waiter. Everything else ends the run.
"""

from typing import Optional


class FabricUpgradeError(Exception):
    """Base class for all upgrade failures."""

    kind = "error"


class TransientSessionError(FabricUpgradeError):
    """Session or network loss; recoverable by reconnecting."""

    kind = "transient"


class PreconditionFailedError(FabricUpgradeError):
    """Hardware or firmware is not in a safe state to continue."""

    kind = "precondition-failed"


class UpgradeTimeoutError(FabricUpgradeError):
    """A retry or polling round budget was exhausted."""

    kind = "timeout"


class RemoteOperationFailedError(FabricUpgradeError):
    """A transaction or transfer explicitly reported failure."""

    kind = "remote-operation-failed"


class UcsApiError(RemoteOperationFailedError):
    """UCSM answered a request with an error code."""

    def __init__(self, method: str, error_code: Optional[str], error_descr: Optional[str]):
        self.method = method
        self.error_code = error_code
        self.error_descr = error_descr
        super().__init__(f"{method} failed with error {error_code}: {error_descr}")


class StaleStateError(FabricUpgradeError):
    """A leftover record from an earlier run blocks progress and needs manual cleanup."""

    kind = "stale-state"


class ConfigurationError(FabricUpgradeError):
    """Run configuration is missing or inconsistent."""

    kind = "configuration"
