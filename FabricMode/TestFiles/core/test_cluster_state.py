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
Unit tests for the activation state machine and cluster queries.
"""

import unittest

import pytest

from FabricMode.FabricFlowFunctions.cluster_state import (
    classify_activation_state,
    get_running_version,
    is_ack_waiting,
    next_poll_action,
    resolve_roles,
)
from FabricMode.flow_types import ActivationState, ControllerRole, PollDecision
from FabricMode.TestFiles.test_mocks import FakeUcsSession, build_domain

# Mark all tests in this file as core tests
pytestmark = pytest.mark.core


class TestActivationStateMachine(unittest.TestCase):
    """Test cases for classify_activation_state and next_poll_action."""

    def test_classify_known_states(self):
        self.assertEqual(classify_activation_state("ready"), ActivationState.READY)
        self.assertEqual(classify_activation_state("Ready"), ActivationState.READY)
        for state in ("activating", "rebooting", "updating", "upgrading", "auto-activating", ""):
            with self.subTest(state=state):
                self.assertEqual(classify_activation_state(state), ActivationState.IN_PROGRESS)
        for state in ("failed", "bad-image", "faulty-state"):
            with self.subTest(state=state):
                self.assertEqual(classify_activation_state(state), ActivationState.FAILED)

    def test_classify_unknown_states(self):
        self.assertEqual(classify_activation_state(None), ActivationState.UNKNOWN)
        self.assertEqual(classify_activation_state("something-new"), ActivationState.UNKNOWN)

    def test_terminal_states_win_over_budget(self):
        """Test that ready and failed are decided even on the last round."""
        self.assertEqual(next_poll_action(ActivationState.READY, 20, 20), PollDecision.DONE)
        self.assertEqual(next_poll_action(ActivationState.FAILED, 20, 20), PollDecision.FAIL)

    def test_wait_until_budget_exhausted(self):
        self.assertEqual(next_poll_action(ActivationState.IN_PROGRESS, 1, 20), PollDecision.WAIT)
        self.assertEqual(next_poll_action(ActivationState.UNKNOWN, 19, 20), PollDecision.WAIT)
        self.assertEqual(next_poll_action(ActivationState.IN_PROGRESS, 20, 20), PollDecision.TIMEOUT)
        self.assertEqual(next_poll_action(ActivationState.UNKNOWN, 21, 20), PollDecision.TIMEOUT)

    def test_ack_waiting_states(self):
        self.assertTrue(is_ack_waiting("waiting-for-user"))
        self.assertTrue(is_ack_waiting("Waiting-For-Ack"))
        self.assertFalse(is_ack_waiting("acknowledged"))
        self.assertFalse(is_ack_waiting(None))
        self.assertFalse(is_ack_waiting(""))


class TestClusterQueries(unittest.TestCase):
    """Test cases for version and role queries against a fake session."""

    def test_running_version(self):
        session = build_domain(running_version="4.0(4b)")
        self.assertEqual(get_running_version(session), "4.0(4b)")

    def test_running_version_missing(self):
        self.assertIsNone(get_running_version(FakeUcsSession()))

    def test_resolve_roles_clustered(self):
        session = build_domain()
        roles = resolve_roles(session)
        self.assertEqual(roles, {ControllerRole.PRIMARY: "A", ControllerRole.SUBORDINATE: "B"})

    def test_resolve_roles_after_failover(self):
        session = build_domain()
        session.add("mgmtEntity", "sys/mgmt-entity-A", id="A", leadership="subordinate")
        session.add("mgmtEntity", "sys/mgmt-entity-B", id="B", leadership="primary")
        roles = resolve_roles(session)
        self.assertEqual(roles[ControllerRole.PRIMARY], "B")
        self.assertEqual(roles[ControllerRole.SUBORDINATE], "A")

    def test_resolve_roles_standalone(self):
        """Test that a single management entity is treated as primary."""
        session = build_domain(clustered=False)
        session.add("mgmtEntity", "sys/mgmt-entity-A", id="A", leadership="unknown")
        self.assertEqual(resolve_roles(session), {ControllerRole.PRIMARY: "A"})


if __name__ == "__main__":
    unittest.main()
