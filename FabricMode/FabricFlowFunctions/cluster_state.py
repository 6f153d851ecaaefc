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
Cluster and firmware state queries.

This module holds the UCSM object names the upgrade reads and the pure
functions that turn raw operState strings into ActivationState values and
polling decisions. The pure functions have no session or sleep dependency
so they can be tested on their own.
"""

from typing import Dict, Optional

from FabricMode.flow_types import ActivationState, ControllerRole, PollDecision

SYSTEM_RUNNING_DN = "sys/mgmt/fw-system"
INFRA_PACK_DN = "org-root/fw-infra-pack-default"
INFRA_ACK_DN = f"{INFRA_PACK_DN}/ack"
INFRA_SCHED_DN = "org-root/sched-infra-fw"
INFRA_SCHED_WINDOW_DN = f"{INFRA_SCHED_DN}/one-time-immediate"
FIRMWARE_CATALOGUE_DN = "sys/fw-catalogue"

IN_PROGRESS_STATES = frozenset(
    {
        "activating",
        "auto-activating",
        "auto-updating",
        "rebooting",
        "rebuilding",
        "scheduled",
        "set-startup",
        "throttled",
        "upgrading",
        "updating",
        "",
    }
)
FAILED_STATES = frozenset({"bad-image", "failed", "faulty-state"})
READY_STATE = "ready"
ACK_WAITING_PREFIX = "waiting-for-"


def switch_dn(switch_id: str) -> str:
    return f"sys/switch-{switch_id}"


def activation_status_dn(switch_id: str) -> str:
    """firmwareStatus object of one fabric interconnect."""
    return f"{switch_dn(switch_id)}/mgmt/fw-status"


def infra_boot_unit_dn(switch_id: str) -> str:
    """Combined infra boot unit of one fabric interconnect."""
    return f"{switch_dn(switch_id)}/mgmt/fw-boot-def/bootunit-combined"


def classify_activation_state(oper_state: Optional[str]) -> ActivationState:
    """
    Map a firmwareStatus operState to an ActivationState.

    Args:
        oper_state (Optional[str]): Raw operState; None when the object was not readable

    Returns:
        ActivationState: Aggregated state
    """
    if oper_state is None:
        return ActivationState.UNKNOWN
    state = oper_state.strip().lower()
    if state == READY_STATE:
        return ActivationState.READY
    if state in FAILED_STATES:
        return ActivationState.FAILED
    if state in IN_PROGRESS_STATES:
        return ActivationState.IN_PROGRESS
    return ActivationState.UNKNOWN


def next_poll_action(state: ActivationState, rounds_used: int, max_rounds: int) -> PollDecision:
    """
    Decide what a polling loop does after observing a state.

    Args:
        state (ActivationState): State seen in this round
        rounds_used (int): Rounds already consumed, including this one
        max_rounds (int): Round budget

    Returns:
        PollDecision: DONE on ready, FAIL on failed, TIMEOUT once the budget
        is spent, WAIT otherwise
    """
    if state == ActivationState.READY:
        return PollDecision.DONE
    if state == ActivationState.FAILED:
        return PollDecision.FAIL
    if rounds_used >= max_rounds:
        return PollDecision.TIMEOUT
    return PollDecision.WAIT


def is_ack_waiting(oper_state: Optional[str]) -> bool:
    """True when a pending activity waits for a user trigger (waiting-for-*)."""
    return bool(oper_state) and oper_state.lower().startswith(ACK_WAITING_PREFIX)


def get_running_version(session) -> Optional[str]:
    """Return the running UCSM system version, or None if it is not reported."""
    running = session.read_class("firmwareRunning", {"deployment": "system"})
    for mo in running:
        if mo.dn == SYSTEM_RUNNING_DN or len(running) == 1:
            return mo.get("version")
    return None


def resolve_roles(session) -> Dict[ControllerRole, str]:
    """
    Query cluster leadership.

    Returns:
        Dict[ControllerRole, str]: Switch id ("A"/"B") per role. A domain with a
        single management entity maps only PRIMARY, to that entity.
    """
    entities = session.read_class("mgmtEntity")
    roles: Dict[ControllerRole, str] = {}
    if len(entities) == 1:
        roles[ControllerRole.PRIMARY] = entities[0].get("id")
        return roles
    for entity in entities:
        leadership = (entity.get("leadership") or "").lower()
        if leadership == ControllerRole.PRIMARY.value:
            roles[ControllerRole.PRIMARY] = entity.get("id")
        elif leadership == ControllerRole.SUBORDINATE.value:
            roles[ControllerRole.SUBORDINATE] = entity.get("id")
    return roles


def get_switch_model(session, switch_id: str) -> Optional[str]:
    element = session.read_dn(switch_dn(switch_id))
    return element.get("model") if element else None


def get_activation_oper_state(session, switch_id: str) -> Optional[str]:
    status = session.read_dn(activation_status_dn(switch_id))
    return status.get("operState") if status else None
