#!/usr/bin/env python3
"""Tests for compdblib/toolchain_env.py"""

import time
import asyncio
import subprocess
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock, patch

import pytest

from compdblib.constants import BootstrapError
from compdblib.toolchain_env import (
    DevCmdEnvironmentBootstrap,
    EnvironmentBootstrap,
    ProcessCapture,
    ProcessLauncher,
    SubprocessLauncher,
    ToolchainEnvironmentProvider,
    build_dev_cmd_arguments,
    parse_captured_environment,
)


class FakeLauncher(ProcessLauncher):
    """Launcher that records calls and prints the marker block for the requested id."""

    def __init__(self, settings: Optional[Dict[str, str]] = None, timed_out: bool = False, noise: bool = True):
        self.settings = settings if settings is not None else {"INCLUDE": "C:\\VC\\include", "Path": "C:\\VC\\bin"}
        self.timed_out = timed_out
        self.noise = noise
        self.calls: List[Tuple[str, str, float]] = []

    def spawn_and_capture(self, executable: str, arguments: str, timeout_s: float) -> ProcessCapture:
        self.calls.append((executable, arguments, timeout_s))
        if self.timed_out:
            return ProcessCapture(timed_out=True)
        unique_id = arguments.rsplit(" ", 1)[-1]
        lines = ["**********************", "** Visual Studio 2022 Developer Command Prompt", "BANNER=not captured"] if self.noise else []
        lines.append(f"SONARLINT_BEGIN_CAPTURE {unique_id}")
        lines.extend(f"{name}={value}" for name, value in self.settings.items())
        lines.append(f"SONARLINT_END_CAPTURE {unique_id}")
        if self.noise:
            lines.append("AFTER=not captured")
        return ProcessCapture(lines=lines)


class CountingBootstrap(EnvironmentBootstrap):
    """Bootstrap that sleeps, counts fetches and tracks concurrency."""

    def __init__(self, results: Optional[Dict[str, Optional[Dict[str, str]]]] = None, delay: float = 0.05):
        self.results = results or {}
        self.delay = delay
        self.calls: List[Optional[str]] = []
        self.active = 0
        self.max_active = 0
        self._guard = threading.Lock()

    def fetch(self, script_params: Optional[str]) -> Optional[Dict[str, str]]:
        with self._guard:
            self.calls.append(script_params)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delay)
            return self.results.get(script_params or "", {"KEY": script_params or ""})
        finally:
            with self._guard:
                self.active -= 1


@pytest.fixture
def install_root(temp_dir: str) -> str:
    """Create a fake IDE install root containing Common7/Tools/VsDevCmd.bat."""
    script = Path(temp_dir, "VS", "Common7", "Tools", "VsDevCmd.bat")
    script.parent.mkdir(parents=True)
    script.write_text("@echo off\n", encoding="utf-8")
    return str(Path(temp_dir, "VS"))


class TestBuildDevCmdArguments:
    """Tests for build_dev_cmd_arguments."""

    def test_with_params(self) -> None:
        """Test the full argument string."""
        result = build_dev_cmd_arguments("C:\\VS\\Common7\\Tools\\VsDevCmd.bat", "-arch=amd64", "abc")
        assert result == (
            '/U /K set VSCMD_SKIP_SENDTELEMETRY=1 && "C:\\VS\\Common7\\Tools\\VsDevCmd.bat" -arch=amd64'
            " && echo SONARLINT_BEGIN_CAPTURE abc && set && echo SONARLINT_END_CAPTURE abc"
        )

    @pytest.mark.parametrize("params", [None, ""])
    def test_without_params(self, params: Optional[str]) -> None:
        """Test no trailing space is left after the script path."""
        result = build_dev_cmd_arguments("C:\\x.bat", params, "id")
        assert '"C:\\x.bat" && echo SONARLINT_BEGIN_CAPTURE id' in result


class TestParseCapturedEnvironment:
    """Tests for parse_captured_environment."""

    def test_only_between_markers(self) -> None:
        """Test lines outside the markers are ignored."""
        lines = ["A=outside", "SONARLINT_BEGIN_CAPTURE id", "INCLUDE=C:\\inc", "SONARLINT_END_CAPTURE id", "B=outside"]
        assert parse_captured_environment(lines, "id") == {"INCLUDE": "C:\\inc"}

    def test_value_with_equals_and_crlf(self) -> None:
        """Test values keep later "=" characters and lose line endings."""
        lines = ["SONARLINT_BEGIN_CAPTURE id\r\n", "OPTS=a=b\r\n", "EMPTY=\r\n", "SONARLINT_END_CAPTURE id\r\n"]
        assert parse_captured_environment(lines, "id") == {"OPTS": "a=b", "EMPTY": ""}

    def test_lines_without_equals_ignored(self) -> None:
        """Test lines that are not NAME=value are skipped."""
        lines = ["SONARLINT_BEGIN_CAPTURE id", "garbage", "=novalue", "X=1", "SONARLINT_END_CAPTURE id"]
        assert parse_captured_environment(lines, "id") == {"X": "1"}

    def test_other_id_ignored(self) -> None:
        """Test markers of another capture do not start capturing."""
        lines = ["SONARLINT_BEGIN_CAPTURE other", "X=1", "SONARLINT_END_CAPTURE other"]
        assert parse_captured_environment(lines, "id") == {}

    def test_missing_end_marker(self) -> None:
        """Test capture runs to the end of the output without an end marker."""
        assert parse_captured_environment(["SONARLINT_BEGIN_CAPTURE id", "X=1"], "id") == {"X": "1"}


class TestDevCmdEnvironmentBootstrap:
    """Tests for DevCmdEnvironmentBootstrap.fetch."""

    def test_fetch(self, install_root: str) -> None:
        """Test the captured environment is returned."""
        launcher = FakeLauncher()
        bootstrap = DevCmdEnvironmentBootstrap(install_root, launcher=launcher, command_shell="cmd.exe")

        assert bootstrap.fetch("-arch=amd64") == {"INCLUDE": "C:\\VC\\include", "Path": "C:\\VC\\bin"}

        executable, arguments, timeout_s = launcher.calls[0]
        assert executable == "cmd.exe"
        assert f'"{bootstrap.script_path}" -arch=amd64 && ' in arguments
        assert arguments.endswith(f"SONARLINT_END_CAPTURE {bootstrap.unique_id}")
        assert timeout_s == 30.0

    def test_unique_id_differs_per_instance(self, install_root: str) -> None:
        """Test every bootstrap gets its own marker id."""
        assert DevCmdEnvironmentBootstrap(install_root).unique_id != DevCmdEnvironmentBootstrap(install_root).unique_id

    def test_missing_script(self, temp_dir: str) -> None:
        """Test None without launching when the script is missing."""
        launcher = FakeLauncher()
        bootstrap = DevCmdEnvironmentBootstrap(temp_dir, launcher=launcher, command_shell="cmd.exe")
        assert bootstrap.fetch(None) is None
        assert launcher.calls == []

    def test_timeout(self, install_root: str) -> None:
        """Test None when the process is killed at the timeout."""
        launcher = FakeLauncher(timed_out=True)
        bootstrap = DevCmdEnvironmentBootstrap(install_root, launcher=launcher, timeout_ms=1500, command_shell="cmd.exe")
        assert bootstrap.fetch(None) is None
        assert launcher.calls[0][2] == 1.5

    def test_no_settings_captured(self, install_root: str) -> None:
        """Test None when nothing was printed between the markers."""
        bootstrap = DevCmdEnvironmentBootstrap(install_root, launcher=FakeLauncher(settings={}), command_shell="cmd.exe")
        assert bootstrap.fetch(None) is None

    def test_launch_failure(self, install_root: str) -> None:
        """Test launcher errors are logged and give None."""
        launcher = MagicMock(spec=ProcessLauncher)
        launcher.spawn_and_capture.side_effect = BootstrapError("cannot start")
        bootstrap = DevCmdEnvironmentBootstrap(install_root, launcher=launcher, command_shell="cmd.exe")
        assert bootstrap.fetch(None) is None

    def test_critical_exception_propagates(self, install_root: str) -> None:
        """Test out-of-memory errors are not absorbed."""
        launcher = MagicMock(spec=ProcessLauncher)
        launcher.spawn_and_capture.side_effect = MemoryError()
        bootstrap = DevCmdEnvironmentBootstrap(install_root, launcher=launcher, command_shell="cmd.exe")
        with pytest.raises(MemoryError):
            bootstrap.fetch(None)

    def test_shell_from_comspec(self, install_root: str, monkeypatch: Any) -> None:
        """Test the command shell is taken from COMSPEC when not given."""
        monkeypatch.setenv("COMSPEC", "C:\\Windows\\system32\\cmd.exe")
        launcher = FakeLauncher()
        DevCmdEnvironmentBootstrap(install_root, launcher=launcher).fetch(None)
        assert launcher.calls[0][0] == "C:\\Windows\\system32\\cmd.exe"

    def test_no_shell_available(self, install_root: str, monkeypatch: Any) -> None:
        """Test None when no command shell can be found."""
        monkeypatch.delenv("COMSPEC", raising=False)
        launcher = FakeLauncher()
        with patch("compdblib.tool_detection.shutil.which", return_value=None):
            assert DevCmdEnvironmentBootstrap(install_root, launcher=launcher).fetch(None) is None
        assert launcher.calls == []


class TestSubprocessLauncher:
    """Tests for SubprocessLauncher."""

    def test_captures_output(self) -> None:
        """Test stdout lines are returned."""
        process = MagicMock()
        process.communicate.return_value = ("A=1\r\nB=2\r\n".encode("utf-16-le"), None)
        with patch("compdblib.toolchain_env.subprocess.Popen", return_value=process):
            capture = SubprocessLauncher().spawn_and_capture("cmd.exe", "/c set", 5.0)
        assert capture.lines == ["A=1", "B=2"]
        assert not capture.timed_out

    def test_unicode_shell_output(self, temp_dir: str) -> None:
        """Test UTF-16LE output, as written by "cmd.exe /U", is decoded and parsed."""
        script = Path(temp_dir, "fake_shell.py")
        output = "banner\r\nSONARLINT_BEGIN_CAPTURE abc\r\nINCLUDE=C:\\inc\r\nSONARLINT_END_CAPTURE abc\r\n"
        script.write_text(f"import sys\nsys.stdout.buffer.write({output!r}.encode(\"utf-16-le\"))\n", encoding="utf-8")

        capture = SubprocessLauncher().spawn_and_capture(sys.executable, f'"{script}"', 30.0)

        assert not capture.timed_out
        assert parse_captured_environment(capture.lines, "abc") == {"INCLUDE": "C:\\inc"}

    def test_decode_output(self) -> None:
        """Test a byte order mark is dropped and other encodings can be chosen."""
        assert SubprocessLauncher().decode_output("\ufeffX=1\r\n".encode("utf-16-le")) == ["X=1"]
        assert SubprocessLauncher(encoding="utf-8").decode_output(b"X=1\nY=2\n") == ["X=1", "Y=2"]
        assert SubprocessLauncher().decode_output(b"") == []

    def test_timeout_kills_process(self) -> None:
        """Test a process still running at the timeout is killed."""
        process = MagicMock()
        process.communicate.side_effect = [subprocess.TimeoutExpired("cmd.exe", 5.0), (b"", None)]
        process.poll.return_value = None
        with patch("compdblib.toolchain_env.subprocess.Popen", return_value=process):
            capture = SubprocessLauncher().spawn_and_capture("cmd.exe", "/c pause", 5.0)
        assert capture.timed_out
        assert capture.lines == []
        process.kill.assert_called_once()

    def test_start_failure(self) -> None:
        """Test OSError from Popen becomes BootstrapError."""
        with patch("compdblib.toolchain_env.subprocess.Popen", side_effect=FileNotFoundError("no shell")):
            with pytest.raises(BootstrapError):
                SubprocessLauncher().spawn_and_capture("missing.exe", "", 1.0)


class TestToolchainEnvironmentProvider:
    """Tests for ToolchainEnvironmentProvider.get_async."""

    def test_cached_per_params(self) -> None:
        """Test the second request for the same parameters is served from cache."""
        bootstrap = CountingBootstrap(delay=0)
        provider = ToolchainEnvironmentProvider(bootstrap)

        async def run() -> None:
            first = await provider.get_async("-arch=x86")
            second = await provider.get_async("-arch=x86")
            assert first is second

        asyncio.run(run())
        assert bootstrap.calls == ["-arch=x86"]

    def test_none_and_empty_share_key(self) -> None:
        """Test None and "" parameters use the same cache entry."""
        bootstrap = CountingBootstrap(delay=0)
        provider = ToolchainEnvironmentProvider(bootstrap)

        async def run() -> None:
            await provider.get_async(None)
            await provider.get_async("")

        asyncio.run(run())
        assert len(bootstrap.calls) == 1

    def test_concurrent_same_key_fetches_once(self) -> None:
        """Test concurrent requests for one key start a single fetch."""
        bootstrap = CountingBootstrap()
        provider = ToolchainEnvironmentProvider(bootstrap)

        async def run() -> List[Optional[Dict[str, str]]]:
            return await asyncio.gather(*(provider.get_async("-arch=amd64") for _ in range(5)))

        results = asyncio.run(run())
        assert bootstrap.calls == ["-arch=amd64"]
        assert all(result == {"KEY": "-arch=amd64"} for result in results)

    def test_different_keys_serialized(self) -> None:
        """Test fetches for different keys never overlap."""
        bootstrap = CountingBootstrap()
        provider = ToolchainEnvironmentProvider(bootstrap)

        async def run() -> List[Optional[Dict[str, str]]]:
            return await asyncio.gather(provider.get_async("a"), provider.get_async("b"), provider.get_async("c"))

        results = asyncio.run(run())
        assert sorted(bootstrap.calls) == ["a", "b", "c"]
        assert bootstrap.max_active == 1
        assert [r["KEY"] for r in results if r is not None] == ["a", "b", "c"]

    def test_failures_not_cached(self) -> None:
        """Test a failed fetch is retried on the next request."""
        bootstrap = CountingBootstrap(results={"x": None}, delay=0)
        provider = ToolchainEnvironmentProvider(bootstrap)

        async def run() -> None:
            assert await provider.get_async("x") is None
            assert await provider.get_async("x") is None

        asyncio.run(run())
        assert bootstrap.calls == ["x", "x"]

    def test_lock_released_after_exception(self) -> None:
        """Test a fetch that raises does not block later requests."""
        bootstrap = MagicMock(spec=EnvironmentBootstrap)
        bootstrap.fetch.side_effect = [RuntimeError("boom"), {"A": "1"}]
        provider = ToolchainEnvironmentProvider(bootstrap)

        async def run() -> Optional[Dict[str, str]]:
            with pytest.raises(RuntimeError):
                await provider.get_async("p")
            return await asyncio.wait_for(provider.get_async("p"), timeout=5)

        assert asyncio.run(run()) == {"A": "1"}

    def test_clear(self) -> None:
        """Test clear() forces a new fetch."""
        bootstrap = CountingBootstrap(delay=0)
        provider = ToolchainEnvironmentProvider(bootstrap)

        async def run() -> None:
            await provider.get_async("p")
            provider.clear()
            await provider.get_async("p")

        asyncio.run(run())
        assert bootstrap.calls == ["p", "p"]

    def test_end_to_end_with_bootstrap(self, install_root: str) -> None:
        """Test the provider with a real bootstrap and a fake process."""
        launcher = FakeLauncher()
        provider = ToolchainEnvironmentProvider(DevCmdEnvironmentBootstrap(install_root, launcher=launcher, command_shell="cmd.exe"))

        async def run() -> Tuple[Any, Any]:
            return await asyncio.gather(provider.get_async(None), provider.get_async(None))

        first, second = asyncio.run(run())
        assert first == second == {"INCLUDE": "C:\\VC\\include", "Path": "C:\\VC\\bin"}
        assert len(launcher.calls) == 1
