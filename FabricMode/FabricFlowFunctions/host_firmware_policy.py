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
Host firmware policy updates.

A host firmware policy (firmwareComputeHostPack) tells UCSM which blade and
rack bundle versions servers bound to it should run. The update is a single
create-or-modify, so running it again with the same versions changes nothing.
"""

import logging

from FabricMode.flow_types import RunContext

from .exceptions import RemoteOperationFailedError, TransientSessionError
from .ucs_session import ManagedObject

HOST_PACK_DN_PREFIX = "org-root/fw-host-pack-"


def host_pack_dn(policy_name: str) -> str:
    return f"{HOST_PACK_DN_PREFIX}{policy_name}"


class HostFirmwarePolicyUpdater:
    """Points a host firmware policy at new blade and rack bundle versions."""

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger(__name__)

    def update_host_firmware_policy(
        self, context: RunContext, policy_name: str, blade_version: str, rack_version: str
    ) -> ManagedObject:
        """
        Upsert the named host firmware policy.

        Args:
            context (RunContext): Run context holding the active session
            policy_name (str): Policy name under org-root
            blade_version (str): Blade bundle version, e.g. "4.1(3a)B"
            rack_version (str): Rack bundle version, e.g. "4.1(3a)C"

        Returns:
            ManagedObject: The policy as committed by UCSM

        Raises:
            RemoteOperationFailedError: If UCSM rejects the change or the session drops
        """
        policy = ManagedObject(
            class_id="firmwareComputeHostPack",
            dn=host_pack_dn(policy_name),
            attributes={
                "name": policy_name,
                "bladeBundleVersion": blade_version,
                "rackBundleVersion": rack_version,
                "status": "created,modified",
            },
        )
        self.logger.info(
            f"Updating host firmware policy '{policy_name}': blade {blade_version}, rack {rack_version}"
        )
        try:
            committed = context.session.set_mo(policy)
        except RemoteOperationFailedError as e:
            self.logger.error(f"Host firmware policy update rejected: {str(e)}")
            raise
        except TransientSessionError as e:
            self.logger.error(f"Session lost during host firmware policy update: {str(e)}")
            raise RemoteOperationFailedError(
                f"Host firmware policy '{policy_name}' update not confirmed, session lost: {str(e)}"
            ) from e
        self.logger.info(f"Host firmware policy '{policy_name}' updated")
        return committed
