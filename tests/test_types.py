import pytest
from pathlib import Path

from vmharness.types import (
    GuestEndpoint,
    JobContext,
    JobOutcome,
    RemoteScriptJob,
    RunnerSettings,
    ScriptRunResult,
    TerminalStatus,
)


@pytest.mark.parametrize("content,status", [
    ("TestCompleted", TerminalStatus.COMPLETED),
    ("TestCompleted\n", TerminalStatus.COMPLETED),
    ("  TestAborted \r\n", TerminalStatus.ABORTED),
    ("TestFailed", TerminalStatus.FAILED),
    ("", TerminalStatus.EMPTY),
    ("\n", TerminalStatus.EMPTY),
    ("TestRunning", TerminalStatus.RUNNING),
    ("testcompleted", TerminalStatus.RUNNING),
    ("TestCompleted TestFailed", TerminalStatus.RUNNING),
])
def test_parse_status(content, status):
    assert TerminalStatus.parse(content) is status


def test_terminal_flags():
    assert TerminalStatus.COMPLETED.is_terminal
    assert TerminalStatus.FAILED.is_terminal
    assert not TerminalStatus.RUNNING.is_terminal
    assert not TerminalStatus.EMPTY.is_terminal


def test_job_defaults():
    job = RemoteScriptJob(script_name="perf.sh")
    assert job.log_name == "perf.sh.log"
    assert job.status_file_name == "state.txt"
    assert RemoteScriptJob(script_name="perf.sh", log_file_name="out.log").log_name == "out.log"


def test_context_paths(tmp_path):
    context = JobContext(
        endpoint=GuestEndpoint(address="10.0.0.5", key_path=Path("ssh/id_rsa")),
        job=RemoteScriptJob(script_name="perf.sh"),
        settings=RunnerSettings(work_dir=tmp_path, script_dir=Path("remote-scripts")),
    )
    assert context.local_status_file == tmp_path / "state.txt"
    assert context.local_wrapper_file == tmp_path / "runtest.sh"
    assert context.local_script_file == Path("remote-scripts") / "perf.sh"
    assert context.local_log_file == tmp_path / "perf.sh.log"


def test_context_is_immutable():
    endpoint = GuestEndpoint(address="10.0.0.5", key_path=Path("ssh/id_rsa"))
    with pytest.raises(AttributeError):
        endpoint.address = "10.0.0.6"


def test_result_success_only_when_completed():
    assert ScriptRunResult(outcome=JobOutcome.COMPLETED).success
    for outcome in (JobOutcome.FAILED, JobOutcome.ABORTED, JobOutcome.TIMED_OUT, JobOutcome.ERROR):
        assert not ScriptRunResult(outcome=outcome).success
