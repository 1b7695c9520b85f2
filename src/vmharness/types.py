"""Type definitions for guest endpoints, script jobs and their results."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

DEFAULT_STATUS_FILE = "state.txt"
DEFAULT_WRAPPER_FILE = "runtest.sh"


class CopyDirection(Enum):
    """Direction of a file transfer relative to the guest."""

    TO_GUEST = "to_guest"
    FROM_GUEST = "from_guest"


class TerminalStatus(Enum):
    """Content of the guest status file, as written by the test script."""

    COMPLETED = "TestCompleted"
    ABORTED = "TestAborted"
    FAILED = "TestFailed"
    RUNNING = "running"
    EMPTY = ""

    @classmethod
    def parse(cls, content: str) -> "TerminalStatus":
        """
        Classify raw status file content.

        Only an exact keyword match counts as terminal; surrounding
        whitespace is ignored, substrings are not.
        """
        text = content.strip()
        if not text:
            return cls.EMPTY
        for status in (cls.COMPLETED, cls.ABORTED, cls.FAILED):
            if text == status.value:
                return status
        return cls.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self in (TerminalStatus.COMPLETED, TerminalStatus.ABORTED, TerminalStatus.FAILED)


class JobOutcome(Enum):
    """Final outcome of a remote script job."""

    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass(frozen=True)
class GuestEndpoint:
    """One reachable guest machine."""

    address: str
    key_path: Path
    username: str = "root"
    port: int = 22


@dataclass(frozen=True)
class RemoteScriptJob:
    """A single test script to run on a guest."""

    script_name: str
    poll_budget: int = 60
    status_file_name: str = DEFAULT_STATUS_FILE
    log_file_name: Optional[str] = None

    @property
    def log_name(self) -> str:
        return self.log_file_name or f"{self.script_name}.log"


@dataclass(frozen=True)
class RunnerSettings:
    """Local side of a script run: where files are staged and collected."""

    work_dir: Path
    script_dir: Path
    log_dir: Optional[Path] = None
    poll_interval: float = 5.0
    wrapper_file_name: str = DEFAULT_WRAPPER_FILE


@dataclass(frozen=True)
class JobContext:
    """Everything a runner phase needs, passed explicitly to each phase."""

    endpoint: GuestEndpoint
    job: RemoteScriptJob
    settings: RunnerSettings

    @property
    def local_status_file(self) -> Path:
        return self.settings.work_dir / self.job.status_file_name

    @property
    def local_wrapper_file(self) -> Path:
        return self.settings.work_dir / self.settings.wrapper_file_name

    @property
    def local_script_file(self) -> Path:
        return self.settings.script_dir / self.job.script_name

    @property
    def local_log_file(self) -> Path:
        return self.settings.work_dir / self.job.log_name


@dataclass(slots=True)
class ScriptRunResult:
    """Structured result for a remote script execution."""

    outcome: JobOutcome
    polls: int = 0
    log_file: Optional[Path] = None

    @property
    def success(self) -> bool:
        return self.outcome is JobOutcome.COMPLETED
