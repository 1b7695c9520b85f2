"""Utilities for VM-based integration testing over SSH."""

from vmharness.channel import GuestChannel
from vmharness.config import HarnessConfig, get_harness_config
from vmharness.inspection import detect_distribution, is_module_loaded, kernel_version
from vmharness.orchestration import RemoteScriptRunner, run_remote_script
from vmharness.readiness import probe_port, wait_for_guest, wait_for_shutdown
from vmharness.ssh import SSHClient
from vmharness.types import (
    CopyDirection,
    GuestEndpoint,
    JobContext,
    JobOutcome,
    RemoteScriptJob,
    RunnerSettings,
    ScriptRunResult,
    TerminalStatus,
)

__all__ = [
    "SSHClient",
    "GuestChannel",
    "HarnessConfig",
    "get_harness_config",
    "RemoteScriptRunner",
    "run_remote_script",
    "probe_port",
    "wait_for_guest",
    "wait_for_shutdown",
    "detect_distribution",
    "is_module_loaded",
    "kernel_version",
    "CopyDirection",
    "GuestEndpoint",
    "JobContext",
    "JobOutcome",
    "RemoteScriptJob",
    "RunnerSettings",
    "ScriptRunResult",
    "TerminalStatus",
]
