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
Reachability waiter: bounded wait for the UCSM endpoint to come back.
"""

import logging
import time

from FabricMode.flow_types import RunContext

from .base_connection_manager import SessionManager
from .exceptions import FabricUpgradeError, UpgradeTimeoutError
from .ucs_session import UcsSession


class ReachabilityWaiter:
    """Polls host reachability and session establishment with a fixed interval."""

    def __init__(
        self,
        session_manager: SessionManager,
        *,
        max_attempts: int = 20,
        poll_interval: int = 30,
        logger: logging.Logger = None,
    ):
        self.session_manager = session_manager
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)

    def wait_for_session(self) -> UcsSession:
        """
        Wait until the endpoint answers ping and accepts a login.

        Returns:
            UcsSession: A new authenticated session

        Raises:
            UpgradeTimeoutError: If max_attempts is exhausted
        """
        endpoint = self.session_manager.endpoint
        for attempt in range(1, self.max_attempts + 1):
            if not self.session_manager.ping_endpoint():
                self.logger.info(
                    f"UCSM {endpoint} not reachable (attempt {attempt}/{self.max_attempts}), "
                    f"waiting {self.poll_interval} seconds"
                )
            else:
                try:
                    session = self.session_manager.connect()
                    self.logger.info(f"Session to UCSM {endpoint} established on attempt {attempt}")
                    return session
                except FabricUpgradeError as e:
                    self.logger.info(
                        f"Login to UCSM {endpoint} failed (attempt {attempt}/{self.max_attempts}): {str(e)}"
                    )
            if attempt < self.max_attempts:
                time.sleep(self.poll_interval)

        self.logger.error(f"UCSM {endpoint} did not accept a session after {self.max_attempts} attempts")
        raise UpgradeTimeoutError(
            f"UCSM {endpoint} unreachable after {self.max_attempts} attempts at {self.poll_interval}s intervals"
        )

    def reconnect(self, context: RunContext) -> UcsSession:
        """
        Replace the context session after a presumed loss.

        The stale session is closed best effort before waiting.
        """
        self.session_manager.disconnect(context.session)
        context.session = None
        context.session = self.wait_for_session()
        return context.session
