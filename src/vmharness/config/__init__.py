"""
Configuration module for the VM test harness.
Loads environment variables for guest access and YAML tunables for polling.
"""
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

SETTINGS_FILE = Path(__file__).parent / "harness_settings.yaml"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "poll_budget": 60,
    "poll_interval_seconds": 5,
    "readiness_timeout_seconds": 300,
    "probe_timeout_seconds": 2,
    "readiness_interval_seconds": 3,
    "state_interval_seconds": 2,
}


def load_harness_settings(settings_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load polling and timeout tunables from YAML.

    Keys missing from the file keep their defaults.
    """
    settings_path = settings_path or SETTINGS_FILE
    settings = dict(DEFAULT_SETTINGS)
    if not settings_path.exists():
        return settings

    with open(settings_path, "r", encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    settings.update(loaded)
    return settings


class HarnessConfig:
    """Load guest access configuration from environment."""

    def __init__(self, env_file: Optional[Path] = None, settings_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            env_file: Path to .env file. If None, looks for .env in the working directory.
            settings_path: Path to the YAML tunables. If None, uses the packaged file.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        self._load_env_file(env_file)
        self.ssh_user = os.getenv("VMHARNESS_SSH_USER", "root")
        self.ssh_port = self._get_int_env("VMHARNESS_SSH_PORT", 22)
        self.key_dir = Path(os.getenv("VMHARNESS_KEY_DIR", "ssh"))
        self.script_dir = Path(os.getenv("VMHARNESS_SCRIPT_DIR", "remote-scripts"))
        log_dir = os.getenv("VMHARNESS_LOG_DIR")
        self.log_dir = Path(log_dir) if log_dir else None
        self.hypervisor_uri = os.getenv("VMHARNESS_HYPERVISOR_URI", "qemu:///system")

        settings = load_harness_settings(settings_path)
        self.poll_budget = int(settings["poll_budget"])
        self.poll_interval = float(settings["poll_interval_seconds"])
        self.readiness_timeout = float(settings["readiness_timeout_seconds"])
        self.probe_timeout = float(settings["probe_timeout_seconds"])
        self.readiness_interval = float(settings["readiness_interval_seconds"])
        self.state_interval = float(settings["state_interval_seconds"])

    def key_path(self, key_name: str) -> Path:
        """Resolve a private key file name inside the key directory."""
        return self.key_dir / key_name

    def _load_env_file(self, env_file: Optional[Path]) -> None:
        """Load .env file if it exists."""
        if env_file is None:
            env_file = Path.cwd() / ".env"

        if env_file.exists():
            self._parse_env_file(env_file)

    @staticmethod
    def _parse_env_file(env_file: Path) -> None:
        """Parse and load .env file into os.environ."""
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    value = value.strip()
                    if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                        value = value[1:-1]
                    os.environ.setdefault(key.strip(), value)

    @staticmethod
    def _get_int_env(key: str, default: int) -> int:
        value = os.getenv(key)
        if value is None or not value.strip():
            return default
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Environment variable '{key}' must be an integer, got: {value}")


def get_harness_config(env_file: Optional[Path] = None, settings_path: Optional[Path] = None) -> HarnessConfig:
    """
    Get harness configuration.

    Args:
        env_file: Path to .env file (for testing).
        settings_path: Path to YAML tunables (for testing).

    Returns:
        HarnessConfig instance.
    """
    return HarnessConfig(env_file, settings_path)
