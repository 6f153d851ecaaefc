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
Connection management for the UCS Manager endpoint.

This module provides the SessionManager class which knows the endpoint and
credentials of one UCS domain, checks host reachability and opens and closes
gateway sessions. It never keeps a session itself: callers own the session
they receive and hand it back to disconnect().
"""

import logging
import subprocess
from typing import Optional

from FabricMode.flow_types import Credentials, RunConfig

from .ucs_session import UcsGateway, UcsSession


class SessionManager:
    """Opens, checks and closes sessions to one UCSM endpoint."""

    def __init__(self, config: RunConfig, gateway: Optional[UcsGateway] = None, logger: logging.Logger = None):
        """
        Initialize the session manager.

        Args:
            config: Validated run configuration holding endpoint and credentials
            gateway: Session gateway; a UcsGateway built from the config when omitted
            logger: Logger instance
        """
        self.endpoint = config.endpoint
        self.credentials: Credentials = config.credentials
        self.logger = logger or logging.getLogger(__name__)
        self.gateway = gateway or UcsGateway(
            protocol=config.protocol,
            port=config.port,
            verify_ssl=config.verify_ssl,
            timeout=config.request_timeout,
            logger=self.logger,
        )

    def ping_endpoint(self) -> bool:
        """
        Ping the UCSM endpoint once to check if it is reachable.

        Returns:
            bool: True if the host answered
        """
        command = ["ping", "-c", "1", self.endpoint]
        try:
            subprocess.check_output(command, universal_newlines=True, stderr=subprocess.STDOUT)
            return True
        except (subprocess.CalledProcessError, OSError):
            return False

    def connect(self) -> UcsSession:
        """
        Open a new authenticated session.

        Raises:
            TransientSessionError: If UCSM cannot be reached
            UcsApiError: If the login is rejected
        """
        self.logger.info(f"Connecting to UCSM {self.endpoint}")
        return self.gateway.connect(self.endpoint, self.credentials)

    def disconnect(self, session: Optional[UcsSession]) -> None:
        """
        Close a session, best effort.

        A session whose endpoint is rebooting cannot log out cleanly; the
        failure is logged and the session is abandoned.
        """
        if session is None:
            return
        try:
            self.gateway.disconnect(session)
            self.logger.info(f"Disconnected from UCSM {self.endpoint}")
        except Exception as e:
            self.logger.warning(f"Error closing UCSM session: {str(e)}")
