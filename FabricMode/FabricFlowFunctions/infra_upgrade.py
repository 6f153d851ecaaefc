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
Infra Upgrade Driver
This module triggers the infrastructure firmware auto-install and verifies
that UCS Manager comes back on the target version. Nothing here is retried:
a half-applied or failed activation must be looked at by an operator.
"""

import logging
import time
from typing import List

from FabricMode.flow_types import ActivationOutcome, ControllerRole, RunContext

from .base_connection_manager import SessionManager
from .cluster_state import (
    INFRA_PACK_DN,
    INFRA_SCHED_DN,
    INFRA_SCHED_WINDOW_DN,
    get_running_version,
    infra_boot_unit_dn,
    resolve_roles,
)
from .exceptions import (
    PreconditionFailedError,
    RemoteOperationFailedError,
    TransientSessionError,
    UcsApiError,
)
from .firmware_bundles import TargetVersion
from .reachability import ReachabilityWaiter
from .shared_utils import versions_match
from .ucs_session import ManagedObject


class InfraUpgradeDriver:
    """Drives the infrastructure bundle activation on the fabric interconnects."""

    def __init__(
        self,
        session_manager: SessionManager,
        waiter: ReachabilityWaiter,
        *,
        settle_seconds: int = 300,
        logger: logging.Logger = None,
    ):
        self.session_manager = session_manager
        self.waiter = waiter
        self.settle_seconds = settle_seconds
        self.logger = logger or logging.getLogger(__name__)

    def check_preconditions(self, session, bundle_filename: str) -> None:
        """
        Verify the domain is safe to upgrade.

        The primary interconnect's infra boot unit must be ready and the
        infra bundle must be in the firmware catalogue.

        Raises:
            PreconditionFailedError: If either check fails
        """
        roles = resolve_roles(session)
        primary_id = roles.get(ControllerRole.PRIMARY)
        if not primary_id:
            raise PreconditionFailedError("Could not determine the primary fabric interconnect")

        boot_unit = session.read_dn(infra_boot_unit_dn(primary_id))
        oper_state = boot_unit.get("operState") if boot_unit else None
        self.logger.info(f"Infra boot unit on fabric interconnect {primary_id}: {oper_state}")
        if oper_state != "ready":
            self.logger.error(f"Infra boot unit on fabric interconnect {primary_id} is '{oper_state}', not ready")
            raise PreconditionFailedError(
                f"Infra boot unit on fabric interconnect {primary_id} is '{oper_state}', expected 'ready'"
            )

        if not session.read_class("firmwareDistributable", {"name": bundle_filename}):
            self.logger.error(f"Infra bundle {bundle_filename} is not in the firmware catalogue")
            raise PreconditionFailedError(f"Infra bundle {bundle_filename} is not in the firmware catalogue")

    @staticmethod
    def build_trigger_transaction(target: TargetVersion) -> List[ManagedObject]:
        """
        Objects committed together to start the auto-install.

        The default infra pack gets the target version with forced deployment,
        and a one-time immediate schedule occurrence starts the install.
        """
        return [
            ManagedObject(
                class_id="firmwareInfraPack",
                dn=INFRA_PACK_DN,
                attributes={
                    "name": "default",
                    "infraBundleVersion": target.infra_tag,
                    "forceDeploy": "yes",
                    "status": "modified",
                },
            ),
            ManagedObject(
                class_id="trigSched",
                dn=INFRA_SCHED_DN,
                attributes={"name": "infra-fw", "status": "created,modified"},
            ),
            ManagedObject(
                class_id="trigAbsWindow",
                dn=INFRA_SCHED_WINDOW_DN,
                attributes={
                    "name": "one-time-immediate",
                    "date": "immediate",
                    "concurCap": "unlimited",
                    "status": "created,modified",
                },
            ),
        ]

    def ensure_infra_version(
        self, context: RunContext, target: TargetVersion, bundle_filename: str
    ) -> ActivationOutcome:
        """
        Bring UCS Manager to the target infra version.

        Args:
            context (RunContext): Run context; its session is replaced after the reboot window
            target (TargetVersion): Target firmware version
            bundle_filename (str): Infra bundle that must be in the catalogue

        Returns:
            ActivationOutcome: ALREADY_AT_TARGET without any change, or ACTIVATED

        Raises:
            PreconditionFailedError: The domain is not in a safe state
            RemoteOperationFailedError: The trigger transaction or the activation failed
        """
        running_version = get_running_version(context.session)
        self.logger.info(f"Running system version: {running_version}, target: {target}")
        if versions_match(running_version, target.version):
            self.logger.info("System already runs the target version, no infra upgrade needed")
            context.activated_version = running_version
            return ActivationOutcome.ALREADY_AT_TARGET

        self.check_preconditions(context.session, bundle_filename)

        self.logger.info(f"Triggering infra auto-install to {target.infra_tag}")
        try:
            context.session.transaction(self.build_trigger_transaction(target))
        except UcsApiError as e:
            self.logger.error(f"Infra auto-install transaction rejected: {str(e)}")
            raise
        except TransientSessionError as e:
            self.logger.error(f"Session lost during infra auto-install transaction: {str(e)}")
            raise RemoteOperationFailedError(
                f"Outcome of the infra auto-install transaction is unknown, session lost: {str(e)}"
            ) from e
        self.logger.info("Infra auto-install committed")

        # UCSM restarts its management services as part of the install
        self.session_manager.disconnect(context.session)
        context.session = None
        self.logger.info(f"Waiting {self.settle_seconds} seconds for UCS Manager to restart")
        time.sleep(self.settle_seconds)
        context.session = self.waiter.wait_for_session()

        running_version = get_running_version(context.session)
        if not versions_match(running_version, target.version):
            self.logger.error(f"System version after activation is {running_version}, expected {target}")
            raise RemoteOperationFailedError(
                f"Infra activation did not take effect: running {running_version}, expected {target}"
            )
        context.activated_version = running_version
        self.logger.info(f"UCS Manager now runs {running_version}")
        return ActivationOutcome.ACTIVATED
