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
Fabric Upgrade Orchestrator - Run Controller for a UCS domain firmware upgrade

This module sequences one upgrade run against a UCS Manager domain:

    1. **connect**: wait for UCSM to be reachable and log in
    2. **detect**: read the running version, cluster roles and FI model
    3. **stage_images**: make sure every required bundle is in the catalogue
    4. **infra_upgrade**: trigger the infra auto-install and verify the new version
    5. **activation**: follow the subordinate, then primary, interconnect reboot
    6. **host_policy**: point the host firmware policy at the new bundles
    7. **disconnect**: log out

Every failure goes through one funnel: the error is logged, the registered
error handlers run, the stage is marked failed in upgrade_progress.json and
run() returns False. Nothing is resumed from a previous run; re-running is
safe because every stage checks remote state first.

Example:
    >>> from FabricMode.upgrade_orchestrator import FabricUpgradeOrchestrator
    >>> orchestrator = FabricUpgradeOrchestrator(run_config)
    >>> success = orchestrator.run()
"""

from typing import Any, Callable, Optional

from rich.console import Console

from FabricMode.FabricFlowFunctions.activation_sequencer import ActivationSequencer
from FabricMode.FabricFlowFunctions.base_connection_manager import SessionManager
from FabricMode.FabricFlowFunctions.cluster_state import get_running_version, get_switch_model, resolve_roles
from FabricMode.FabricFlowFunctions.error_handlers import run_error_handlers
from FabricMode.FabricFlowFunctions.exceptions import FabricUpgradeError
from FabricMode.FabricFlowFunctions.firmware_bundles import TargetVersion, required_bundles
from FabricMode.FabricFlowFunctions.host_firmware_policy import HostFirmwarePolicyUpdater
from FabricMode.FabricFlowFunctions.image_stager import ImageStager
from FabricMode.FabricFlowFunctions.infra_upgrade import InfraUpgradeDriver
from FabricMode.FabricFlowFunctions.reachability import ReachabilityWaiter
from FabricMode.FabricFlowFunctions.shared_utils import versions_match
from FabricMode.flow_progress_tracker import FlowProgressTracker
from FabricMode.flow_types import ActivationOutcome, BundleChannel, ControllerRole, RunConfig, RunContext
from FabricMode.output_manager import (
    get_collected_errors,
    get_log_directory,
    print_run_summary,
    set_log_directory,
    setup_logging,
    start_collecting_errors,
    stop_collecting_errors,
)


class FabricUpgradeOrchestrator:
    """Runs one firmware upgrade of a UCS domain from start to finish."""

    def __init__(
        self,
        config: RunConfig,
        session_manager: Optional[SessionManager] = None,
        progress_tracker: Optional[FlowProgressTracker] = None,
        console: Optional[Console] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config (RunConfig): Validated run configuration
            session_manager (Optional[SessionManager]): Session manager; built from the config when omitted
            progress_tracker (Optional[FlowProgressTracker]): Stage tracker; writes
                upgrade_progress.json in the log directory when omitted
            console (Optional[Console]): Console the run summary is printed to
        """
        if config.log_directory:
            set_log_directory(config.log_directory)

        self.config = config
        self.target = TargetVersion.parse(config.target_version)
        self.console_output_enabled = config.console_output
        self.logger = setup_logging("upgrade_orchestrator", console_output=self.console_output_enabled)
        self.console = console

        polling = config.polling
        self.session_manager = session_manager or SessionManager(config, logger=self._component_logger("session"))
        self.waiter = ReachabilityWaiter(
            self.session_manager,
            max_attempts=polling.reachability_max_attempts,
            poll_interval=polling.reachability_poll_interval,
            logger=self._component_logger("reachability"),
        )
        self.stager = ImageStager(
            config.image_source,
            poll_interval=polling.transfer_poll_interval,
            timeout=polling.transfer_timeout,
            logger=self._component_logger("image_stager"),
        )
        self.infra_driver = InfraUpgradeDriver(
            self.session_manager,
            self.waiter,
            settle_seconds=polling.infra_settle_seconds,
            logger=self._component_logger("infra_upgrade"),
        )
        self.sequencer = ActivationSequencer(
            self.session_manager,
            self.waiter,
            poll_interval=polling.activation_poll_interval,
            max_rounds=polling.activation_max_rounds,
            ack_poll_interval=polling.ack_poll_interval,
            ack_max_rounds=polling.ack_max_rounds,
            ack_settle_seconds=polling.ack_settle_seconds,
            max_reconnects=polling.max_reconnects,
            logger=self._component_logger("activation_sequencer"),
        )
        self.policy_updater = HostFirmwarePolicyUpdater(logger=self._component_logger("host_firmware_policy"))

        self.context = RunContext(infra_only=config.infra_only)
        self.current_stage: Optional[str] = None
        self.progress_tracker = progress_tracker or FlowProgressTracker(
            get_log_directory() / "upgrade_progress.json", target_version=self.target.version
        )

    def _component_logger(self, module_name: str):
        return setup_logging(module_name, console_output=self.console_output_enabled)

    def run(self) -> bool:
        """
        Execute the upgrade.

        Returns:
            bool: True if the domain runs the target version and all stages completed
        """
        self.logger.info(
            f"Starting upgrade of UCSM {self.config.endpoint} to {self.target} "
            f"({'infra only' if self.config.infra_only else 'policy ' + str(self.config.host_firmware_policy)})"
        )
        try:
            self._run_stage("connect", self._connect)
            at_target = self._run_stage("detect", self._detect)

            if at_target and self.context.infra_only:
                note = f"already at {self.target}"
                for stage_name in ("stage_images", "infra_upgrade", "activation"):
                    self.progress_tracker.skip_stage(stage_name, note)
            elif at_target:
                host_bundles = [b for b in self.context.bundles if b.channel != BundleChannel.INFRA]
                self._run_stage("stage_images", lambda: self.stager.stage_images(self.context, host_bundles))
                self.progress_tracker.skip_stage("infra_upgrade", f"already at {self.target}")
                self.progress_tracker.skip_stage("activation", f"already at {self.target}")
            else:
                self._run_stage("stage_images", lambda: self.stager.stage_images(self.context, self.context.bundles))
                outcome = self._run_stage("infra_upgrade", self._infra_upgrade)
                if outcome == ActivationOutcome.ACTIVATED:
                    self._run_stage("activation", lambda: self.sequencer.run(self.context))
                else:
                    self.progress_tracker.skip_stage("activation", "infra already at target")

            if self.context.infra_only:
                self.progress_tracker.skip_stage("host_policy", "infra-only run")
            else:
                self._run_stage("host_policy", self._update_host_policy)

            self._run_stage("disconnect", self._disconnect)
        except FabricUpgradeError as e:
            self._handle_failure(e, e.kind)
            return False
        except Exception as e:
            self.logger.exception(f"Unexpected error in stage {self.current_stage}")
            self._handle_failure(e, "error")
            return False
        finally:
            self._print_summary()

        self.progress_tracker.set_run_completed()
        self.logger.info(f"Upgrade of UCSM {self.config.endpoint} to {self.target} completed")
        return True

    def _run_stage(self, name: str, func: Callable[[], Any]) -> Any:
        self.current_stage = name
        self.progress_tracker.start_stage(name)
        start_collecting_errors()
        try:
            result = func()
        finally:
            stop_collecting_errors()
        self.progress_tracker.complete_stage(name)
        return result

    def _connect(self) -> None:
        self.context.session = self.waiter.wait_for_session()

    def _detect(self) -> bool:
        """Read version, roles and model; returns True if the domain already runs the target."""
        session = self.context.session
        running_version = get_running_version(session)
        self.context.roles = resolve_roles(session)
        primary_id = self.context.roles.get(ControllerRole.PRIMARY)
        self.context.primary_model = get_switch_model(session, primary_id) if primary_id else None
        self.context.bundles = required_bundles(self.target, self.context.primary_model, self.context.infra_only)

        roles = ", ".join(f"{role.value}={switch_id}" for role, switch_id in self.context.roles.items())
        self.logger.info(
            f"Running version {running_version}, roles [{roles}], primary model {self.context.primary_model}"
        )
        self.logger.info(f"Required bundles: {', '.join(b.filename for b in self.context.bundles)}")

        at_target = versions_match(running_version, self.target.version)
        if at_target:
            self.context.activated_version = running_version
            self.logger.info(f"Domain already runs {self.target}")
        return at_target

    def _infra_upgrade(self) -> ActivationOutcome:
        infra_bundle = next(b for b in self.context.bundles if b.channel == BundleChannel.INFRA)
        return self.infra_driver.ensure_infra_version(self.context, self.target, infra_bundle.filename)

    def _update_host_policy(self) -> None:
        # The activation stage ends logged out; the domain may have failed over since
        if self.context.session is None:
            self.context.session = self.waiter.wait_for_session()
        self.policy_updater.update_host_firmware_policy(
            self.context,
            self.config.host_firmware_policy,
            self.target.blade_tag,
            self.target.rack_tag,
        )

    def _disconnect(self) -> None:
        self.session_manager.disconnect(self.context.session)
        self.context.session = None

    def _handle_failure(self, error: Exception, error_kind: str) -> None:
        """Single failure funnel for every stage."""
        stage_name = self.current_stage or "startup"
        self.logger.error(f"Stage {stage_name} failed ({error_kind}): {str(error)}")

        error_messages = get_collected_errors() or [str(error)]
        run_error_handlers(stage_name, error, {"orchestrator": self, "run_context": self.context})

        if self.context.session is not None:
            self.session_manager.disconnect(self.context.session)
            self.context.session = None

        self.progress_tracker.fail_stage(stage_name, error_kind, error_messages)
        self.progress_tracker.set_run_failed(f"{stage_name}: {str(error)}")

    def _print_summary(self) -> None:
        if not self.console_output_enabled and self.console is None:
            return
        print_run_summary(self.progress_tracker.get_stage_dicts(), console=self.console)
