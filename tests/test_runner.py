from askai.runner import TIMEOUT_EXIT_STATUS, run_command


def test_success_captures_output(tmp_path):
    result = run_command("echo hello && pwd -P", cwd=tmp_path)
    assert result.success
    assert result.stdout.splitlines() == ["hello", str(tmp_path.resolve())]
    assert result.error is None


def test_nonzero_exit_reports_last_stderr_line():
    result = run_command("echo first >&2; echo broken >&2; exit 3")
    assert result.exit_status == 3
    assert not result.success
    assert result.error == "broken"


def test_timeout_exit_status():
    result = run_command("sleep 5", timeout=0.2)
    assert result.exit_status == TIMEOUT_EXIT_STATUS
    assert "timed out" in result.error


def test_missing_shell():
    result = run_command("true", shell="/nonexistent/shell")
    assert result.exit_status == 127
    assert "could not start" in result.error
