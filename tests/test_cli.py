import pytest
from typer.testing import CliRunner

from askai import cli
from askai.cli import app
from askai.errors import CommandBlocked, ProviderUnavailable
from askai.history import HistoryRecord, HistoryStore
from askai.identity import __codename__, __version__
from askai.pipeline import GenerationResult
from askai.safety import RiskLevel

runner = CliRunner()


def _result(command, level=RiskLevel.LOW, cache_hit=False):
    return GenerationResult(command=command, risk_level=level, cache_hit=cache_hit, provider="gemini")


@pytest.fixture
def stub_generate(monkeypatch):
    calls = []

    def install(outcome):
        def fake(config, prompt, **kwargs):
            calls.append((prompt, kwargs))
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        monkeypatch.setattr(cli, "generate", fake)
        return calls

    return install


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"{__codename__} v{__version__}" in result.output


def test_ask_prints_command_after_confirmation(home, stub_generate):
    calls = stub_generate(_result("ls -la"))

    result = runner.invoke(app, ["ask", "list", "files"], input="y\n")

    assert result.exit_code == 0
    assert result.output.rstrip().endswith("ls -la")
    assert calls[0][0] == "list files"
    assert calls[0][1]["use_daemon"] is False


def test_ask_cancelled(home, stub_generate):
    stub_generate(_result("git push --force", RiskLevel.HIGH))

    result = runner.invoke(app, ["ask", "overwrite", "remote"], input="n\n")

    assert result.exit_code == 1
    assert "Cancelled" in result.output


def test_ask_blocked_never_prints_command(home, stub_generate):
    stub_generate(CommandBlocked("Refusing", command="rm -rf /", reason="recursive deletion of /"))

    result = runner.invoke(app, ["ask", "-y", "nuke", "it"])

    assert result.exit_code == cli.EXIT_BLOCKED
    assert "Blocked" in result.output
    assert "rm -rf /" not in result.output


def test_ask_dry_run_skips_confirmation(home, stub_generate):
    stub_generate(_result("df -h"))

    result = runner.invoke(app, ["ask", "--dry-run", "disk", "usage"])

    assert result.exit_code == 0
    assert "df -h" in result.output
    assert "Use this command?" not in result.output


def test_ask_run_executes_and_marks_history(home, config, stub_generate):
    store = HistoryStore(config.history_path)
    store.append(HistoryRecord(prompt="say hello", command="echo hello", provider="gemini"))
    stub_generate(_result("echo hello"))

    result = runner.invoke(app, ["ask", "--run", "-y", "say", "hello"])

    assert result.exit_code == 0
    assert HistoryStore(config.history_path).records()[-1].executed is True


def test_ask_provider_unavailable(home, stub_generate):
    stub_generate(ProviderUnavailable("Provider 'codex' is not available.", provider="codex"))

    result = runner.invoke(app, ["ask", "-p", "codex", "list", "files"])

    assert result.exit_code == 1
    assert "not available" in result.output


def test_ask_unknown_provider(home):
    result = runner.invoke(app, ["ask", "-p", "copilot", "list"])
    assert result.exit_code == cli.EXIT_USAGE
    assert "Unknown provider" in result.output


def test_invalid_config_exits_with_usage_error(home, stub_generate):
    stub_generate(_result("ls"))
    home.mkdir(parents=True)
    (home / "config.yaml").write_text("cache: [not, a, mapping\n", encoding="utf-8")

    result = runner.invoke(app, ["ask", "-y", "list"])

    assert result.exit_code == cli.EXIT_USAGE
    assert "Config error" in result.output


def test_history_listing_and_stats(home, config):
    store = HistoryStore(config.history_path)
    store.append(HistoryRecord(prompt="disk usage", command="df -h", provider="gemini"))

    listing = runner.invoke(app, ["history"])
    stats = runner.invoke(app, ["history", "--stats"])
    cleared = runner.invoke(app, ["history", "--clear"])

    assert listing.exit_code == 0
    assert "df -h" in listing.output
    assert stats.exit_code == 0
    assert "Total commands" in stats.output
    assert cleared.exit_code == 0
    assert len(HistoryStore(config.history_path)) == 0


def test_cache_commands(home):
    warmed = runner.invoke(app, ["cache", "prewarm"])
    stats = runner.invoke(app, ["cache", "stats"])
    cleared = runner.invoke(app, ["cache", "clear"])

    assert warmed.exit_code == 0
    assert "Pre-warmed" in warmed.output
    assert stats.exit_code == 0
    assert "Entries" in stats.output
    assert "Hits / misses" in stats.output
    assert cleared.exit_code == 0


def test_daemon_status_and_stop_when_not_running(home):
    status = runner.invoke(app, ["daemon", "status"])
    stop = runner.invoke(app, ["daemon", "stop"])

    assert status.exit_code == 1
    assert "not running" in status.output
    assert stop.exit_code == 1


def test_init_writes_config_template(home):
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0
    assert (home / "config.yaml").exists()


def test_batch_dry_run(home, tmp_path, monkeypatch):
    project = tmp_path / "repo"
    project.mkdir()
    (project / "go.mod").write_text("module x\n", encoding="utf-8")

    monkeypatch.setattr(cli.BatchExecutor, "generator", property(lambda self: lambda prompt, **kw: _result("go build ./...")))

    result = runner.invoke(app, ["batch", "--root", str(tmp_path), "--dry-run", "build"])

    assert result.exit_code == 0
    assert "go build" in result.output
    assert "planned" in result.output
