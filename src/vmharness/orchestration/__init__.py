"""Run a test script on a guest and decide pass/fail from its status file."""
import logging
import time
from pathlib import Path
from typing import Optional

from vmharness.channel import GuestChannel
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
from vmharness.utils.filesystem import relocate_file, remove_quietly

logger = logging.getLogger(__name__)

_TERMINAL_OUTCOMES = {
    TerminalStatus.COMPLETED: JobOutcome.COMPLETED,
    TerminalStatus.ABORTED: JobOutcome.ABORTED,
    TerminalStatus.FAILED: JobOutcome.FAILED,
}


class RemoteScriptRunner:
    """
    Stages, launches and watches one test script on a guest.

    The guest script is expected to write TestCompleted, TestAborted or
    TestFailed into the status file in its home directory. Local staging
    files use fixed names inside settings.work_dir, so only one job may run
    per working directory at a time.
    """

    def __init__(self, channel: GuestChannel, settings: RunnerSettings):
        self.channel = channel
        self.settings = settings

    def run(self, endpoint: GuestEndpoint, job: RemoteScriptJob) -> ScriptRunResult:
        """
        Execute one job end to end.

        Args:
            endpoint: Guest the channel is bound to.
            job: Script name, status/log file names and polling budget.

        Returns:
            ScriptRunResult; result.success is True only for TestCompleted.
        """
        context = JobContext(endpoint=endpoint, job=job, settings=self.settings)
        outcome, polls, log_file = JobOutcome.ERROR, 0, None
        try:
            if not self._validate(context):
                return ScriptRunResult(outcome=JobOutcome.ERROR)

            logger.info(f"Running {job.script_name} on {endpoint.address}")
            if not self._stage(context) or not self._prepare(context):
                return ScriptRunResult(outcome=JobOutcome.ERROR)

            self._execute(context)
            outcome, polls = self._poll(context)
            log_file = self._collect(context)
        except OSError as e:
            logger.error(f"Local file error while running {job.script_name}: {e}")
        finally:
            self._cleanup(context)

        result = ScriptRunResult(outcome=outcome, polls=polls, log_file=log_file)
        if result.success:
            logger.info(f"{job.script_name} completed on {endpoint.address}")
        else:
            logger.error(f"{job.script_name} on {endpoint.address} ended with {outcome.value}")
        return result

    def _validate(self, context: JobContext) -> bool:
        endpoint, job = context.endpoint, context.job
        if not endpoint.address:
            logger.error("Guest address is required")
            return False
        if not Path(endpoint.key_path).is_file():
            logger.error(f"Private key file not found: {endpoint.key_path}")
            return False
        if not job.script_name:
            logger.error("Script name is required")
            return False
        if not context.local_script_file.is_file():
            logger.error(f"Script not found: {context.local_script_file}")
            return False
        if job.poll_budget <= 0:
            logger.error(f"Polling budget must be positive, got {job.poll_budget}")
            return False
        return True

    def _stage(self, context: JobContext) -> bool:
        job = context.job
        wrapper = context.local_wrapper_file
        try:
            wrapper.parent.mkdir(parents=True, exist_ok=True)
            wrapper.write_text(f"~/{job.script_name} > ~/{job.log_name}\n", encoding="utf-8")
        except OSError as e:
            logger.error(f"Unable to write {wrapper}: {e}")
            return False

        for local_file in (wrapper, context.local_script_file):
            if not self.channel.copy(local_file, local_file.name, CopyDirection.TO_GUEST):
                logger.error(f"Unable to copy {local_file.name} to {context.endpoint.address}")
                return False
        return True

    def _prepare(self, context: JobContext) -> bool:
        commands = []
        for name in (context.settings.wrapper_file_name, context.job.script_name):
            commands += [f"dos2unix ~/{name}", f"chmod +x ~/{name}"]
        # A status file left by an earlier job must not be read as this job's verdict.
        commands.append(f"rm -f ~/{context.job.status_file_name}")

        for command in commands:
            ok, output = self.channel.run_command(command)
            if not ok:
                logger.error(f"'{command}' failed on {context.endpoint.address}: {output.strip()}")
                return False
        return True

    def _execute(self, context: JobContext) -> None:
        """Run the wrapper and wait for it to return; its exit status is not checked."""
        ok, output = self.channel.run_command(f"~/{context.settings.wrapper_file_name}")
        if not ok:
            logger.warning(f"Wrapper for {context.job.script_name} returned an error: {output.strip()}")
        logger.debug(f"Wrapper for {context.job.script_name} returned on {context.endpoint.address}")

    def _poll(self, context: JobContext):
        """
        Fetch the status file until it holds a terminal keyword.

        Transport failure, a missing file or an empty file end polling at
        once without spending budget. Only non-terminal content counts
        against the budget.
        """
        status_file = context.local_status_file
        remaining = context.job.poll_budget
        polls = 0

        while True:
            polls += 1
            try:
                remove_quietly(status_file)
            except OSError as e:
                logger.error(f"Unable to clear {status_file}: {e}")
                return JobOutcome.ERROR, polls

            if not self.channel.copy(status_file, context.job.status_file_name, CopyDirection.FROM_GUEST):
                logger.error(f"Unable to fetch {context.job.status_file_name} from {context.endpoint.address}")
                return JobOutcome.ERROR, polls

            if not status_file.exists():
                logger.warning(f"Fetch of {context.job.status_file_name} reported success but the file is missing")
                return JobOutcome.ERROR, polls

            try:
                content = status_file.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.error(f"Unable to read {status_file}: {e}")
                return JobOutcome.ERROR, polls

            status = TerminalStatus.parse(content)
            if status is TerminalStatus.EMPTY:
                logger.warning(f"{context.job.status_file_name} from {context.endpoint.address} is empty")
                return JobOutcome.ERROR, polls

            if status.is_terminal:
                logger.info(f"{context.job.script_name} reported {status.value}")
                return _TERMINAL_OUTCOMES[status], polls

            remaining -= 1
            if remaining <= 0:
                logger.error(f"Timed out waiting for {context.job.script_name} after {polls} polls")
                return JobOutcome.TIMED_OUT, polls

            logger.debug(f"{context.job.script_name} still running ({remaining} polls left)")
            time.sleep(context.settings.poll_interval)

    def _collect(self, context: JobContext) -> Optional[Path]:
        log_file = context.local_log_file
        try:
            remove_quietly(log_file)
        except OSError as e:
            logger.warning(f"Unable to clear {log_file}: {e}")
            return None

        if not self.channel.copy(log_file, context.job.log_name, CopyDirection.FROM_GUEST):
            logger.warning(f"Unable to fetch {context.job.log_name} from {context.endpoint.address}")
            # SFTP creates the local file before it opens the remote one.
            self._discard(log_file)
            return None

        if not log_file.is_file() or log_file.stat().st_size == 0:
            logger.warning(f"{context.job.log_name} is missing or empty")
            return None

        if context.settings.log_dir is None:
            logger.info(f"Log saved to {log_file}")
            return log_file

        try:
            destination = relocate_file(log_file, context.settings.log_dir)
        except OSError as e:
            logger.warning(f"Unable to move {log_file} to {context.settings.log_dir}: {e}")
            return log_file
        logger.info(f"Log saved to {destination}")
        return destination

    def _cleanup(self, context: JobContext) -> None:
        self._discard(context.local_status_file)
        self._discard(context.local_wrapper_file)

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            remove_quietly(path)
        except OSError as e:
            logger.warning(f"Unable to remove {path}: {e}")


def run_remote_script(
    endpoint: GuestEndpoint,
    script_name: str,
    settings: RunnerSettings,
    poll_budget: int = 60,
    channel: Optional[GuestChannel] = None,
) -> bool:
    """Run script_name on the guest and return True only if it reported TestCompleted."""
    channel = channel or GuestChannel(endpoint)
    runner = RemoteScriptRunner(channel, settings)
    job = RemoteScriptJob(script_name=script_name, poll_budget=poll_budget)
    return runner.run(endpoint, job).success
