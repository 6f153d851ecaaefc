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
Shared configuration utilities module.

This module provides the ConfigLoader class which handles YAML configuration
loading, validation and merging, and build_run_config() which turns a merged
configuration dictionary into a validated RunConfig.
"""

import copy
import os
from typing import Any, Dict, List, Optional

import yaml

from FabricMode.flow_types import Credentials, ImageSource, PollingSettings, RunConfig

from .exceptions import ConfigurationError
from .firmware_bundles import TargetVersion

SUPPORTED_IMAGE_PROTOCOLS = ("local", "scp", "sftp", "ftp", "tftp")
SUPPORTED_API_PROTOCOLS = ("http", "https")

# settings section -> PollingSettings field, per key
_POLLING_KEYS = {
    "reachability": {
        "max_attempts": "reachability_max_attempts",
        "poll_interval": "reachability_poll_interval",
    },
    "image_transfer": {
        "poll_interval": "transfer_poll_interval",
        "timeout": "transfer_timeout",
    },
    "activation": {
        "poll_interval": "activation_poll_interval",
        "max_rounds": "activation_max_rounds",
        "ack_poll_interval": "ack_poll_interval",
        "ack_max_rounds": "ack_max_rounds",
        "settle_seconds": "ack_settle_seconds",
        "max_reconnects": "max_reconnects",
    },
    "infra": {
        "settle_seconds": "infra_settle_seconds",
    },
}


class ConfigLoader:
    """
    Utility class for loading and managing YAML configurations.

    This class provides static methods for common configuration
    operations like loading, validation, and merging.
    """

    @staticmethod
    def load_config(config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Dict containing the loaded configuration

        Raises:
            ConfigurationError: If the file doesn't exist or is not valid YAML
        """
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {str(e)}") from e

        # Handle empty files
        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")

        return config

    @staticmethod
    def get_config_section(
        config: Dict[str, Any], section: str, default: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Get a configuration section with optional default.

        Args:
            config: The configuration dictionary
            section: Dot-separated section path (e.g., "connection.ucsm")
            default: Default value if section doesn't exist

        Returns:
            The configuration section or default value
        """
        current: Any = config
        for part in section.split("."):
            if not isinstance(current, dict) or current.get(part) is None:
                return default if default is not None else {}
            current = current[part]
        return current

    @staticmethod
    def validate_nested_fields(config: Dict[str, Any], path: str, required_fields: List[str]) -> None:
        """
        Validate that required fields exist in a nested configuration path.

        Args:
            config: The configuration dictionary to validate
            path: Dot-separated path to the nested section (e.g., "connection.ucsm")
            required_fields: List of required field names at that path

        Raises:
            ConfigurationError: If the path doesn't exist or required fields are missing
        """
        # Navigate to the nested section
        current = config
        path_parts = path.split(".")

        for i, part in enumerate(path_parts):
            if not isinstance(current, dict) or part not in current:
                raise ConfigurationError(f"Configuration path '{'.'.join(path_parts[:i+1])}' not found")
            current = current[part]

        # Empty values count as missing
        missing_fields = [field for field in required_fields if current.get(field) in (None, "")]

        if missing_fields:
            raise ConfigurationError(f"Missing required field(s) at '{path}': {', '.join(missing_fields)}")

    @staticmethod
    def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two configuration dictionaries.

        The override_config values take precedence over base_config values,
        except None values, which leave the base value in place.

        Args:
            base_config: The base configuration
            override_config: The configuration with override values

        Returns:
            A new dictionary with merged configuration
        """

        def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
            """Recursively merge two dictionaries."""
            result = copy.deepcopy(base)

            for key, value in override.items():
                if value is None:
                    continue
                if isinstance(value, dict):
                    existing = result.get(key)
                    result[key] = deep_merge(existing if isinstance(existing, dict) else {}, value)
                else:
                    result[key] = copy.deepcopy(value)

            return result

        return deep_merge(base_config, override_config)


def _as_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"'{name}' must be an integer, got {value!r}") from e
    if number < 0:
        raise ConfigurationError(f"'{name}' must not be negative, got {number}")
    return number


_TRUE_STRINGS = ("true", "yes", "on", "1")
_FALSE_STRINGS = ("false", "no", "off", "0")


def _as_bool(value: Any, name: str, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS + _FALSE_STRINGS:
        return value.strip().lower() in _TRUE_STRINGS
    raise ConfigurationError(f"'{name}' must be true or false, got {value!r}")


def build_polling_settings(settings: Dict[str, Any]) -> PollingSettings:
    """
    Build polling settings from the 'settings' section, keeping defaults for absent keys.

    Raises:
        ConfigurationError: On unknown keys or non-integer values
    """
    polling = PollingSettings()
    for section, keys in _POLLING_KEYS.items():
        values = settings.get(section) or {}
        unknown = set(values) - set(keys)
        if unknown:
            raise ConfigurationError(f"Unknown key(s) in settings.{section}: {', '.join(sorted(unknown))}")
        for key, attribute in keys.items():
            if key in values:
                setattr(polling, attribute, _as_int(values[key], f"settings.{section}.{key}"))

    for attribute in ("reachability_max_attempts", "activation_max_rounds", "ack_max_rounds"):
        if getattr(polling, attribute) < 1:
            raise ConfigurationError(f"'{attribute}' must be at least 1")
    return polling


def build_run_config(config: Dict[str, Any]) -> RunConfig:
    """
    Validate a merged configuration dictionary and build the run configuration.

    Args:
        config: Configuration from the YAML file with command line overrides applied

    Returns:
        RunConfig: Validated configuration

    Raises:
        ConfigurationError: If a required value is missing or values conflict
    """
    ConfigLoader.validate_nested_fields(config, "connection.ucsm", ["ip", "username", "password"])
    ConfigLoader.validate_nested_fields(config, "upgrade", ["target_version"])

    ucsm = ConfigLoader.get_config_section(config, "connection.ucsm")
    upgrade = ConfigLoader.get_config_section(config, "upgrade")

    target = TargetVersion.parse(str(upgrade["target_version"]))

    policy_name = upgrade.get("host_firmware_policy") or None
    infra_only = _as_bool(upgrade.get("infra_only"), "upgrade.infra_only", False)
    if bool(policy_name) == infra_only:
        raise ConfigurationError("Exactly one of 'host_firmware_policy' or 'infra_only' must be set")

    protocol = str(ucsm.get("protocol", "https")).lower()
    if protocol not in SUPPORTED_API_PROTOCOLS:
        raise ConfigurationError(f"Unsupported UCSM protocol '{protocol}'")

    source = ConfigLoader.get_config_section(config, "upgrade.image_source")
    image_protocol = str(source.get("protocol", "local")).lower()
    if image_protocol not in SUPPORTED_IMAGE_PROTOCOLS:
        raise ConfigurationError(
            f"Unsupported image source protocol '{image_protocol}', expected one of "
            f"{', '.join(SUPPORTED_IMAGE_PROTOCOLS)}"
        )
    if image_protocol != "local" and not source.get("server"):
        raise ConfigurationError(f"Image source protocol '{image_protocol}' requires 'server'")

    image_source = ImageSource(
        protocol=image_protocol,
        directory=str(upgrade.get("image_directory") or "."),
        server=source.get("server"),
        remote_path=source.get("remote_path"),
        username=source.get("username"),
        password=source.get("password"),
    )

    logging_section = ConfigLoader.get_config_section(config, "logging")

    return RunConfig(
        endpoint=str(ucsm["ip"]),
        credentials=Credentials(username=str(ucsm["username"]), password=str(ucsm["password"])),
        target_version=target.version,
        image_source=image_source,
        host_firmware_policy=policy_name,
        infra_only=infra_only,
        protocol=protocol,
        port=_as_int(ucsm.get("port", 443 if protocol == "https" else 80), "connection.ucsm.port"),
        verify_ssl=_as_bool(ucsm.get("verify_ssl"), "connection.ucsm.verify_ssl", False),
        request_timeout=_as_int(ucsm.get("timeout", 120), "connection.ucsm.timeout"),
        polling=build_polling_settings(ConfigLoader.get_config_section(config, "settings")),
        log_directory=logging_section.get("log_directory"),
        console_output=_as_bool(logging_section.get("console_output"), "logging.console_output", True),
    )
