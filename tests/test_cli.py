"""End-to-end tests for the click CLI."""

import pytest
from click.testing import CliRunner

from cmdwatch.cli import cli
from cmdwatch.runner import SEPARATOR
from cmdwatch.state_store import derive_key


@pytest.fixture
def workdir(tmp_path):
    (tmp_path / "input.txt").write_text("alpha\nbeta\n")
    config = tmp_path / "cmdwatch.yaml"
    config.write_text(
        f"state_dir: {tmp_path / 'state'}\n"
        "interval: 3600\n"
        "commands:\n"
        f"  - name: watched file\n"
        f"    run: cat {tmp_path / 'input.txt'}\n"
        "  - name: broken\n"
        "    run: exit 4\n"
    )
    return tmp_path


def _run(*args):
    return CliRunner().invoke(cli, list(args))


class TestRunCommand:
    def test_first_run_prints_header_and_diff(self, workdir):
        result = _run("run", "-c", str(workdir / "cmdwatch.yaml"), "--builtin-diff")

        assert SEPARATOR in result.output
        assert "watched file" in result.output
        assert "+alpha" in result.output
        assert "error: broken" in result.output
        assert result.exit_code == 1

    def test_state_written_only_for_successful_command(self, workdir):
        _run("run", "-c", str(workdir / "cmdwatch.yaml"), "--builtin-diff")

        state = workdir / "state"
        watched = state / derive_key(f"cat {workdir / 'input.txt'}")
        assert watched.read_bytes() == b"alpha\nbeta\n"
        assert not (state / derive_key("exit 4")).exists()

    def test_rerun_without_force_is_gated(self, workdir):
        config = str(workdir / "cmdwatch.yaml")
        _run("run", "-c", config, "--builtin-diff")
        (workdir / "input.txt").write_text("alpha\ngamma\n")

        result = _run("run", "-c", config, "--builtin-diff")
        assert "watched file" not in result.output

    def test_force_reports_change(self, workdir):
        config = str(workdir / "cmdwatch.yaml")
        _run("run", "-c", config, "--builtin-diff")
        (workdir / "input.txt").write_text("alpha\ngamma\n")

        result = _run("run", "-c", config, "--builtin-diff", "--force")
        assert "-beta" in result.output
        assert "+gamma" in result.output

    def test_state_dir_override(self, workdir):
        other = workdir / "other-state"
        _run("run", "-c", str(workdir / "cmdwatch.yaml"), "--builtin-diff", "-s", str(other))
        assert (other / derive_key(f"cat {workdir / 'input.txt'}")).exists()
        assert not (workdir / "state").exists()

    def test_bad_config_exits_1(self, tmp_path):
        config = tmp_path / "bad.yaml"
        config.write_text("interval: -5\ncommands: []\n")
        result = _run("run", "-c", str(config))
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_all_good_exits_0(self, tmp_path):
        config = tmp_path / "ok.yaml"
        config.write_text(f"state_dir: {tmp_path / 'state'}\ncommands:\n  - run: echo hi\n")
        result = _run("run", "-c", str(config), "--builtin-diff")
        assert result.exit_code == 0
        assert "+hi" in result.output

    def test_unwritable_state_dir_still_prints_diff(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        config = tmp_path / "ok.yaml"
        config.write_text(f"state_dir: {blocker / 'state'}\ncommands:\n  - run: echo hi\n")

        result = _run("run", "-c", str(config), "--builtin-diff")

        assert result.exit_code == 1
        assert "+hi" in result.output
        assert "error: echo hi" in result.output


class TestOtherCommands:
    def test_key(self):
        result = _run("key", "uptime")
        assert result.exit_code == 0
        assert result.output.strip() == derive_key("uptime")

    def test_status_runs_nothing(self, workdir):
        result = _run("status", "-c", str(workdir / "cmdwatch.yaml"))
        assert result.exit_code == 0
        assert "watched file" in result.output
        assert "never" in result.output
        assert not (workdir / "state").exists()

    def test_check_config(self, workdir):
        result = _run("check-config", "-c", str(workdir / "cmdwatch.yaml"))
        assert result.exit_code == 0
        assert "Commands: 2" in result.output
