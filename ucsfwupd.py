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
CLI to upgrade the firmware of a UCS domain (fabric interconnects,
UCS Manager and the host firmware policy) through the UCS Manager XML API
"""

import argparse
import getpass
import os
import signal
import sys
from typing import Any, Dict, List, Optional

from FabricMode.FabricFlowFunctions.config_utils import ConfigLoader, build_run_config
from FabricMode.FabricFlowFunctions.exceptions import ConfigurationError
from FabricMode.upgrade_orchestrator import FabricUpgradeOrchestrator

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2

PASSWORD_ENV_VAR = "UCSM_PASSWORD"


def keyboard_int_handler(_, __):
    """Method to handle user pressing Ctrl+C"""
    # Ignore multiple Ctrl-C and ask user to confirm exit or continue
    signal.signal(signal.SIGINT, signal.SIG_IGN)
    res = input("Ctrl-C was pressed, abort the firmware upgrade? (y/n)")
    if res.lower() == "y":
        print("Exiting...")
        sys.exit(EXIT_FAILURE)
    print("Continuing...")
    signal.signal(signal.SIGINT, keyboard_int_handler)


def build_arg_parser() -> argparse.ArgumentParser:
    """Command line options; every option overrides the matching YAML key."""
    parser = argparse.ArgumentParser(
        description="Upgrade UCS fabric interconnect and host firmware through UCS Manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-c", "--config", help="Path to the upgrade configuration file (YAML)")
    parser.add_argument("-i", "--ip", help="UCS Manager IP address or host name")
    parser.add_argument("-u", "--username", help="UCS Manager user name")
    parser.add_argument(
        "-p",
        "--password",
        help=f"UCS Manager password (default: ${PASSWORD_ENV_VAR}, else prompted)",
    )
    parser.add_argument("-v", "--version", dest="target_version", help="Target firmware version, e.g. 4.1(3a)")
    parser.add_argument("-d", "--image-dir", help="Directory holding the firmware bundle files")

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument("--policy", help="Host firmware policy to update after the infra upgrade")
    mode_group.add_argument(
        "--infra-only",
        action="store_true",
        default=None,
        help="Upgrade the infrastructure only and leave host firmware policies alone",
    )

    parser.add_argument("--log-dir", help="Directory for log files and upgrade_progress.json")
    parser.add_argument("--quiet", action="store_true", help="Log to files only, no console output")
    return parser


def build_cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Translate parsed arguments into a configuration dictionary.

    Options that were not given are None and leave the YAML value in place.
    """
    overrides: Dict[str, Any] = {
        "connection": {"ucsm": {"ip": args.ip, "username": args.username, "password": args.password}},
        "upgrade": {"target_version": args.target_version, "image_directory": args.image_dir},
        "logging": {"log_directory": args.log_dir},
    }
    # Selecting one mode on the command line clears the other from the file
    if args.policy:
        overrides["upgrade"].update({"host_firmware_policy": args.policy, "infra_only": False})
    elif args.infra_only:
        overrides["upgrade"].update({"host_firmware_policy": "", "infra_only": True})
    if args.quiet:
        overrides["logging"]["console_output"] = False
    return overrides


def resolve_password(config: Dict[str, Any]) -> None:
    """Fill in the UCSM password from the environment or a prompt when not configured."""
    ucsm = config.setdefault("connection", {}).setdefault("ucsm", {})
    if ucsm.get("password"):
        return
    env_password = os.environ.get(PASSWORD_ENV_VAR)
    if env_password:
        ucsm["password"] = env_password
    elif sys.stdin.isatty():
        ucsm["password"] = getpass.getpass(f"UCS Manager password for {ucsm.get('username', 'admin')}: ")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function

    Returns:
        int: Process exit code
    """
    args = build_arg_parser().parse_args(argv)

    try:
        base_config = ConfigLoader.load_config(args.config) if args.config else {}
        config = ConfigLoader.merge_configs(base_config, build_cli_overrides(args))
        resolve_password(config)
        run_config = build_run_config(config)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_CONFIG_ERROR

    orchestrator = FabricUpgradeOrchestrator(run_config)
    return EXIT_SUCCESS if orchestrator.run() else EXIT_FAILURE


def entry_point():
    """Console script entry"""
    signal.signal(signal.SIGINT, keyboard_int_handler)
    sys.exit(main())


if __name__ == "__main__":
    entry_point()
