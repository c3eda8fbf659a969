from pathlib import Path

import pytest
from typer.testing import CliRunner

from toolflow.cli import app

FIXTURES = Path(__file__).parent.parent / "fixtures"
WORKFLOWS = FIXTURES / "workflows"


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    config_path = tmp_path / "toolflow.yaml"
    config_path.write_text(f"cache:\n  backend: file\n  directory: {tmp_path / 'cache'}\nlog_level: WARNING\n")
    monkeypatch.setenv("TOOLFLOW_CONFIG", str(config_path))
    for name in ("TOOLFLOW_CACHE_BACKEND", "TOOLFLOW_CACHE_DIR", "TOOLFLOW_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.syspath_prepend(str(FIXTURES))
    return tmp_path


def test_workflow_run_and_cache_hit(cli_env):
    runner = CliRunner()
    args = ["workflow", "run", str(WORKFLOWS / "echo.yaml"), "--invoker", "echo_tools:invoker"]

    first = runner.invoke(app, args)
    assert first.exit_code == 0, first.stdout
    assert "Workflow echo-chain: completed" in first.stdout
    assert "- s2 (echo): ok" in first.stdout
    assert "hits=0 misses=1" in first.stdout

    second = runner.invoke(app, args)
    assert second.exit_code == 0, second.stdout
    assert "- s1 (echo): ok [cached]" in second.stdout

    cleared = runner.invoke(app, [*args, "--clear-cache"])
    assert "hits=0 misses=1" in cleared.stdout


def test_workflow_run_failure_exits_nonzero(cli_env):
    runner = CliRunner()
    result = runner.invoke(
        app,
        ["workflow", "run", str(WORKFLOWS / "failing.json"), "--invoker", "echo_tools:invoker"],
    )
    assert result.exit_code == 1
    assert "Workflow failing: failed" in result.stdout
    assert "error=tool exploded" in result.stdout


def test_workflow_run_bad_invoker(cli_env):
    runner = CliRunner()
    result = runner.invoke(
        app,
        ["workflow", "run", str(WORKFLOWS / "echo.yaml"), "--invoker", "echo_tools:missing"],
    )
    assert result.exit_code == 1
    assert "Could not load invoker" in result.stdout


def test_workflow_run_missing_file(cli_env):
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "run", "nope.yaml", "--invoker", "echo_tools:invoker"])
    assert result.exit_code == 1
    assert "Workflow file not found" in result.stdout


def test_workflow_validate(cli_env):
    runner = CliRunner()
    ok = runner.invoke(app, ["workflow", "validate", str(WORKFLOWS / "echo.yaml")])
    assert ok.exit_code == 0
    assert "Workflow echo-chain is valid (2 steps)" in ok.stdout

    bad = runner.invoke(app, ["workflow", "validate", str(WORKFLOWS / "bad_previous.yaml")])
    assert bad.exit_code == 1
    assert "first: image: No previous step available" in bad.stdout
    assert 'second: <root>: No previous step of type "capture" found' in bad.stdout


def test_cache_stats_and_clear(cli_env):
    runner = CliRunner()
    runner.invoke(
        app,
        ["workflow", "run", str(WORKFLOWS / "echo.yaml"), "--invoker", "echo_tools:invoker"],
    )

    stats = runner.invoke(app, ["cache", "stats", "echo-chain"])
    assert stats.exit_code == 0
    assert "Workflow echo-chain: 1 entries" in stats.stdout

    cleared = runner.invoke(app, ["cache", "clear", "echo-chain"])
    assert cleared.exit_code == 0
    assert "Cleared cache for echo-chain" in cleared.stdout
    assert "0 entries" in runner.invoke(app, ["cache", "stats", "echo-chain"]).stdout

    assert runner.invoke(app, ["cache", "clear"]).exit_code == 1
    assert runner.invoke(app, ["cache", "clear", "--all"]).exit_code == 0
