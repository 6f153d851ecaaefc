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
Dual-Controller Activation Sequencer

After the infra auto-install is committed the fabric interconnects activate
one at a time:

    1. The subordinate interconnect reboots into the new firmware.
    2. UCSM raises a pending activity asking for permission to reboot the primary.
    3. Once acknowledged, the primary reboots and leadership fails over.

The primary is never acknowledged or polled before the subordinate is ready.
Losing the session while an interconnect reboots is expected: the sequencer
reconnects and resumes polling at the same point.
"""

import logging
import time
from typing import Optional

from FabricMode.flow_types import ControllerRole, PollDecision, RunContext

from .base_connection_manager import SessionManager
from .cluster_state import (
    INFRA_ACK_DN,
    classify_activation_state,
    get_activation_oper_state,
    is_ack_waiting,
    next_poll_action,
    resolve_roles,
)
from .exceptions import RemoteOperationFailedError, TransientSessionError, UpgradeTimeoutError
from .reachability import ReachabilityWaiter
from .shared_utils import poll_until
from .ucs_session import ManagedObject


class ActivationSequencer:
    """Tracks the subordinate-then-primary activation of a fabric interconnect pair."""

    def __init__(
        self,
        session_manager: SessionManager,
        waiter: ReachabilityWaiter,
        *,
        poll_interval: int = 60,
        max_rounds: int = 20,
        ack_poll_interval: int = 60,
        ack_max_rounds: int = 40,
        ack_settle_seconds: int = 300,
        max_reconnects: int = 20,
        logger: logging.Logger = None,
    ):
        """
        Initialize the activation sequencer.

        Args:
            session_manager (SessionManager): Opens and closes sessions
            waiter (ReachabilityWaiter): Used to reconnect after a session loss
            poll_interval (int): Seconds between activation state checks
            max_rounds (int): Activation polling rounds per interconnect
            ack_poll_interval (int): Seconds between pending activity checks
            ack_max_rounds (int): Pending activity polling rounds
            ack_settle_seconds (int): Wait after acknowledging the primary reboot
            max_reconnects (int): Reconnects allowed while waiting for the subordinate
            logger (logging.Logger): Logger instance
        """
        self.session_manager = session_manager
        self.waiter = waiter
        self.poll_interval = poll_interval
        self.max_rounds = max_rounds
        self.ack_poll_interval = ack_poll_interval
        self.ack_max_rounds = ack_max_rounds
        self.ack_settle_seconds = ack_settle_seconds
        self.max_reconnects = max_reconnects
        self.logger = logger or logging.getLogger(__name__)

    def run(self, context: RunContext) -> None:
        """
        Sequence the activation of both interconnects, then disconnect.

        Raises:
            RemoteOperationFailedError: An interconnect reported a failed activation
            UpgradeTimeoutError: A round or reconnect budget was exhausted
        """
        if ControllerRole.SUBORDINATE in context.roles:
            self.wait_for_subordinate(context)
        else:
            self.logger.info("Standalone fabric interconnect, no subordinate to wait for")

        ack = self.wait_for_pending_ack(context)
        primary_id = context.roles.get(ControllerRole.PRIMARY)
        self.acknowledge_reboot(context, ack)

        self.logger.info(f"Waiting {self.ack_settle_seconds} seconds for the primary reboot to start")
        time.sleep(self.ack_settle_seconds)

        self.wait_for_primary(context, primary_id)

        self.session_manager.disconnect(context.session)
        context.session = None
        self.logger.info("Both fabric interconnects activated")

    def wait_for_subordinate(self, context: RunContext) -> None:
        """
        Poll the subordinate interconnect until its activation is ready.

        Leadership is resolved every round. Session losses reconnect without
        consuming a polling round, up to max_reconnects times.
        """
        rounds_used = 0
        reconnects = 0
        while True:
            try:
                context.roles = resolve_roles(context.session)
                subordinate_id = context.roles.get(ControllerRole.SUBORDINATE)
                oper_state = (
                    get_activation_oper_state(context.session, subordinate_id) if subordinate_id else None
                )
            except TransientSessionError as e:
                reconnects += 1
                if reconnects > self.max_reconnects:
                    self.logger.error(f"Gave up on the subordinate after {self.max_reconnects} reconnects")
                    raise UpgradeTimeoutError(
                        f"Session to UCSM lost more than {self.max_reconnects} times while waiting for the subordinate"
                    ) from e
                self.logger.warning(f"Lost session while polling the subordinate ({str(e)}), reconnecting")
                self.waiter.reconnect(context)
                continue

            rounds_used += 1
            if self._round_finished(
                f"Subordinate fabric interconnect {subordinate_id}", oper_state, rounds_used
            ):
                return

    def wait_for_primary(self, context: RunContext, primary_id: Optional[str]) -> None:
        """
        Poll the interconnect that was primary when the reboot was acknowledged.

        Every session loss reconnects, re-resolves leadership and consumes a
        polling round.
        """
        rounds_used = 0
        while True:
            rounds_used += 1
            try:
                if not primary_id:
                    context.roles = resolve_roles(context.session)
                    primary_id = context.roles.get(ControllerRole.PRIMARY)
                oper_state = get_activation_oper_state(context.session, primary_id) if primary_id else None
            except TransientSessionError as e:
                self.logger.warning(f"Lost session while polling fabric interconnect {primary_id} ({str(e)})")
                if rounds_used >= self.max_rounds:
                    self.logger.error(f"Fabric interconnect {primary_id} did not come back in {self.max_rounds} rounds")
                    raise UpgradeTimeoutError(
                        f"Fabric interconnect {primary_id} activation not confirmed within {self.max_rounds} rounds"
                    ) from e
                self.waiter.reconnect(context)
                self._log_failover(context, primary_id)
                continue

            if self._round_finished(f"Fabric interconnect {primary_id}", oper_state, rounds_used):
                return

    def wait_for_pending_ack(self, context: RunContext) -> ManagedObject:
        """
        Wait for the pending activity that asks to reboot the primary.

        Returns:
            ManagedObject: The firmwareAck object in a waiting-for-* state
        """

        def probe():
            ack = context.session.read_dn(INFRA_ACK_DN)
            oper_state = ack.get("operState") if ack else None
            if is_ack_waiting(oper_state):
                return True, ack
            return False, oper_state or "no pending activity"

        return poll_until(
            description="Pending activity for the primary reboot",
            probe=probe,
            check_interval=self.ack_poll_interval,
            max_rounds=self.ack_max_rounds,
            logger=self.logger,
        )

    def acknowledge_reboot(self, context: RunContext, ack: ManagedObject) -> None:
        """Trigger the pending primary reboot immediately."""
        context.roles = resolve_roles(context.session)
        self.logger.info(
            f"Acknowledging pending reboot of primary fabric interconnect "
            f"{context.roles.get(ControllerRole.PRIMARY)} ({ack.get('operState')})"
        )
        context.session.set_mo(
            ManagedObject(
                class_id="firmwareAck",
                dn=ack.dn or INFRA_ACK_DN,
                attributes={"adminState": "trigger-immediate", "status": "modified"},
            )
        )

    def _round_finished(self, label: str, oper_state: Optional[str], rounds_used: int) -> bool:
        """Apply the transition rule for one observed state; sleeps when polling continues."""
        state = classify_activation_state(oper_state)
        decision = next_poll_action(state, rounds_used, self.max_rounds)
        self.logger.info(f"{label} activation: {oper_state!r} -> {state.value} (round {rounds_used}/{self.max_rounds})")

        if decision == PollDecision.DONE:
            self.logger.info(f"{label} is ready")
            return True
        if decision == PollDecision.FAIL:
            self.logger.error(f"{label} activation failed with state '{oper_state}'")
            raise RemoteOperationFailedError(f"{label} activation failed with state '{oper_state}'")
        if decision == PollDecision.TIMEOUT:
            self.logger.error(f"{label} not ready after {self.max_rounds} rounds")
            raise UpgradeTimeoutError(
                f"{label} not ready after {self.max_rounds} rounds at {self.poll_interval}s intervals"
            )
        time.sleep(self.poll_interval)
        return False

    def _log_failover(self, context: RunContext, rebooted_id: Optional[str]) -> None:
        try:
            context.roles = resolve_roles(context.session)
        except TransientSessionError as e:
            self.logger.warning(f"Could not re-resolve leadership after reconnect: {str(e)}")
            return
        new_primary = context.roles.get(ControllerRole.PRIMARY)
        if new_primary and new_primary != rebooted_id:
            self.logger.info(f"Leadership failed over to fabric interconnect {new_primary}")
