"""Tests for rebuild, relaunch and process replacement."""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from gemini_orchestrator.cli.events import BuildComplete, BuildError, ReplaceImage
from gemini_orchestrator.config import BuildConfig, RelaunchConfig
from gemini_orchestrator.services.rebuild import (
    LaunchTarget,
    RelaunchError,
    SelfReplaceError,
    build_directory,
    exec_image,
    relaunch_with,
    render_build_command,
    resolve_executable,
    run_rebuild,
    self_replace,
)


def _make_executable(path: Path) -> Path:
    path.write_text("#!/bin/sh\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


def _python_build(code: str, timeout: int = 30) -> BuildConfig:
    return BuildConfig(command=["{python}", "-c", code, "{output}"], timeout=timeout)


class TestResolveExecutable:
    def test_configured_path_wins(self, tmp_path: Path) -> None:
        target = resolve_executable("/usr/bin/whatever", configured=str(tmp_path / "orch"))
        assert target == LaunchTarget(str(tmp_path / "orch"))
        assert target.rebuildable

    def test_argv0_executable(self, tmp_path: Path) -> None:
        exe = _make_executable(tmp_path / "orch")
        assert resolve_executable(str(exe)) == LaunchTarget(str(exe))

    def test_bare_name_found_on_path(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        exe = _make_executable(tmp_path / "gemini-orchestrator")
        monkeypatch.setenv("PATH", str(tmp_path))
        assert resolve_executable("gemini-orchestrator") == LaunchTarget(str(exe))

    def test_python_script_falls_back_to_interpreter(self, tmp_path: Path) -> None:
        script = _make_executable(tmp_path / "main.py")
        target = resolve_executable(str(script))
        assert target.path == sys.executable
        assert target.prefix_args == ("-m", "gemini_orchestrator")
        assert not target.rebuildable

    def test_missing_file_falls_back(self, tmp_path: Path) -> None:
        target = resolve_executable(str(tmp_path / "gone"))
        assert target.path == sys.executable


class TestBuildDirectory:
    def test_plain_file(self, tmp_path: Path) -> None:
        exe = _make_executable(tmp_path / "orch")
        assert build_directory(str(exe)) == tmp_path

    def test_absolute_symlink(self, tmp_path: Path) -> None:
        real_dir = tmp_path / "project"
        real_dir.mkdir()
        exe = _make_executable(real_dir / "orch")
        link = tmp_path / "bin-orch"
        os.symlink(exe, link)
        assert build_directory(str(link)) == real_dir

    def test_relative_symlink(self, tmp_path: Path) -> None:
        real_dir = tmp_path / "project"
        real_dir.mkdir()
        _make_executable(real_dir / "orch")
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        os.symlink("../project/orch", bin_dir / "orch")
        assert build_directory(str(bin_dir / "orch")) == real_dir

    def test_follows_only_one_level(self, tmp_path: Path) -> None:
        first = tmp_path / "a"
        first.mkdir()
        second = tmp_path / "b"
        second.mkdir()
        _make_executable(second / "orch")
        os.symlink(second / "orch", first / "orch")
        os.symlink(first / "orch", tmp_path / "orch")
        assert build_directory(str(tmp_path / "orch")) == first


class TestRenderBuildCommand:
    def test_placeholders(self) -> None:
        argv = render_build_command(["{python}", "-o", "{output}", "{source}/main"], source="src", output="/x/orch")
        assert argv == [sys.executable, "-o", "/x/orch", "src/main"]


class TestRunRebuild:
    @pytest.mark.asyncio
    async def test_success_overwrites_executable(self, tmp_path: Path) -> None:
        exe = _make_executable(tmp_path / "orch")
        build = _python_build("import sys; open(sys.argv[1], 'w').write('rebuilt')")
        result = await run_rebuild(LaunchTarget(str(exe)), build)
        assert result == BuildComplete()
        assert exe.read_text() == "rebuilt"

    @pytest.mark.asyncio
    async def test_runs_in_build_directory(self, tmp_path: Path) -> None:
        exe = _make_executable(tmp_path / "orch")
        build = _python_build("import os; open('cwd.txt', 'w').write(os.getcwd())")
        await run_rebuild(LaunchTarget(str(exe)), build)
        assert Path((tmp_path / "cwd.txt").read_text()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_failure_reports_exit_code_and_output(self, tmp_path: Path) -> None:
        exe = _make_executable(tmp_path / "orch")
        build = _python_build("import sys; print('syntax error in main'); sys.exit(3)")
        result = await run_rebuild(LaunchTarget(str(exe)), build)
        assert result == BuildError("exit 3\nOutput: syntax error in main")

    @pytest.mark.asyncio
    async def test_silent_failure(self, tmp_path: Path) -> None:
        exe = _make_executable(tmp_path / "orch")
        result = await run_rebuild(LaunchTarget(str(exe)), _python_build("raise SystemExit(1)"))
        assert result == BuildError("exit 1")

    @pytest.mark.asyncio
    async def test_missing_tool(self, tmp_path: Path) -> None:
        exe = _make_executable(tmp_path / "orch")
        build = BuildConfig(command=[str(tmp_path / "no-such-tool")])
        result = await run_rebuild(LaunchTarget(str(exe)), build)
        assert isinstance(result, BuildError)
        assert result.detail.startswith("failed to start")

    @pytest.mark.asyncio
    async def test_timeout_kills_build(self, tmp_path: Path) -> None:
        exe = _make_executable(tmp_path / "orch")
        result = await run_rebuild(LaunchTarget(str(exe)), _python_build("import time; time.sleep(30)", timeout=1))
        assert result == BuildError("timed out after 1s")

    @pytest.mark.asyncio
    async def test_interpreter_target_is_not_rebuildable(self) -> None:
        result = await run_rebuild(LaunchTarget(sys.executable, ("-m", "gemini_orchestrator")), BuildConfig())
        assert isinstance(result, BuildError)
        assert "no executable to rebuild" in result.detail


class TestRelaunchWith:
    def test_script_shape(self) -> None:
        image = relaunch_with("auto-commit", LaunchTarget("/opt/bin/orch"), RelaunchConfig())
        assert image.path == "zsh"
        assert image.argv == ("zsh", "-c", "clear\nreset\nauto-commit\nclear\nexec /opt/bin/orch --restore\n")
        assert image.env is None
        assert image.fatal is False

    def test_custom_shell(self) -> None:
        image = relaunch_with("ls", LaunchTarget("/opt/bin/orch"), RelaunchConfig(shell="/bin/bash"))
        assert image.argv[:2] == ("/bin/bash", "-c")

    def test_passes_original_arguments_once(self) -> None:
        argv = ["--config", "/c.yaml", "--restore"]
        image = relaunch_with("ls", LaunchTarget("/opt/bin/orch"), RelaunchConfig(), argv)
        assert image.argv[2].endswith("exec /opt/bin/orch --config /c.yaml --restore\n")

    def test_quotes_paths(self) -> None:
        image = relaunch_with("ls", LaunchTarget("/opt/my tools/orch"), RelaunchConfig())
        assert "exec '/opt/my tools/orch' --restore" in image.argv[2]

    def test_interpreter_target(self) -> None:
        image = relaunch_with("ls", LaunchTarget("/usr/bin/python3", ("-m", "gemini_orchestrator")), RelaunchConfig())
        assert image.argv[2].endswith("exec /usr/bin/python3 -m gemini_orchestrator --restore\n")


class TestSelfReplace:
    def test_keeps_arguments_and_environment(self) -> None:
        image = self_replace(LaunchTarget("/opt/bin/orch"), ["--config", "x.yaml"], {"HOME": "/home/me"})
        assert image.path == "/opt/bin/orch"
        assert image.argv == ("/opt/bin/orch", "--config", "x.yaml")
        assert image.env == {"HOME": "/home/me"}
        assert image.fatal is True


class _Replaced(Exception):
    pass


class TestExecImage:
    def test_exec_without_env(self) -> None:
        image = ReplaceImage(path="zsh", argv=("zsh", "-c", "ls"))
        with patch("gemini_orchestrator.services.rebuild.os.execvp", side_effect=_Replaced) as mock_exec:
            with pytest.raises(_Replaced):
                exec_image(image)
        mock_exec.assert_called_once_with("zsh", ["zsh", "-c", "ls"])

    def test_exec_with_env(self) -> None:
        image = ReplaceImage(path="/opt/bin/orch", argv=("/opt/bin/orch",), env={"A": "1"}, fatal=True)
        with patch("gemini_orchestrator.services.rebuild.os.execvpe", side_effect=_Replaced) as mock_exec:
            with pytest.raises(_Replaced):
                exec_image(image)
        mock_exec.assert_called_once_with("/opt/bin/orch", ["/opt/bin/orch"], {"A": "1"})

    def test_relaunch_failure_is_recoverable(self) -> None:
        image = ReplaceImage(path="zsh", argv=("zsh", "-c", "ls"))
        with patch("gemini_orchestrator.services.rebuild.os.execvp", side_effect=FileNotFoundError("zsh")):
            with pytest.raises(RelaunchError, match="failed to start zsh"):
                exec_image(image)

    def test_self_replace_failure_is_fatal(self) -> None:
        image = ReplaceImage(path="/opt/bin/orch", argv=("/opt/bin/orch",), env={}, fatal=True)
        with patch("gemini_orchestrator.services.rebuild.os.execvpe", side_effect=PermissionError("denied")):
            with pytest.raises(SelfReplaceError):
                exec_image(image)
