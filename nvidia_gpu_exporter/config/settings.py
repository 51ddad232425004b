"""Environment settings overrides."""

import os
from typing import Any, Dict


ENV_PREFIX = "NVIDIA_GPU_EXPORTER_"

# Environment variable suffix -> (config section, key)
ENV_OVERRIDES = {
    "PREFIX": ("collector", "prefix"),
    "NVIDIA_SMI_COMMAND": ("collector", "nvidia_smi_command"),
    "QUERY_FIELD_NAMES": ("collector", "query_field_names"),
    "SHUTDOWN_ON_ERROR": ("collector", "shutdown_on_error"),
    "COMMAND_TIMEOUT": ("collector", "command_timeout"),
    "LISTEN_ADDRESS": ("web", "listen_address"),
    "TELEMETRY_PATH": ("web", "telemetry_path"),
    "LOG_LEVEL": (None, "log_level"),
}


class Settings:
    """Application settings from environment variables."""

    @staticmethod
    def overrides() -> Dict[str, Any]:
        """
        Collect NVIDIA_GPU_EXPORTER_* variables as a nested config dictionary.

        Returns:
            Dict[str, Any]: Overrides, e.g. {"collector": {"prefix": "gpu"}}
        """
        result: Dict[str, Any] = {}
        for suffix, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(ENV_PREFIX + suffix)
            if value is None or value == "":
                continue
            target = result.setdefault(section, {}) if section else result
            target[key] = value
        return result
