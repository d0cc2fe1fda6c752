#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************************************************************************************************
# * BSD 3-Clause License
# *
# * Copyright (c) 2025, Mana Battery
# * All rights reserved.
# *
# * Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
# *
# * 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
# * 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
# *    documentation and/or other materials provided with the distribution.
# * 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
# *    software without specific prior written permission.
# *
# * THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
# * THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
# * CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
# * PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# * LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
# * EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
# ****************************************************************************************************************************************************
"""Capture and caching of the toolchain environment (INCLUDE, LIB, PATH, ...).

The MSVC toolchain only works with the environment set up by VsDevCmd.bat. We
run the script in a command shell, then print the resulting environment between
two marker lines:

    cmd.exe /U /K set VSCMD_SKIP_SENDTELEMETRY=1 && "<VsDevCmd.bat>" <params>
        && echo SONARLINT_BEGIN_CAPTURE <id> && set && echo SONARLINT_END_CAPTURE <id>

Everything outside the markers (banner, warnings) is ignored. The process is
killed if it has not finished within the timeout.

Snapshots are cached per script parameter string for the lifetime of the
provider. Fetches are serialized by a single lock: at most one bootstrap
process runs at a time, whatever the parameters.
"""

import os
import uuid
import shlex
import asyncio
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from compdblib.constants import (
    CAPTURE_BEGIN_MARKER,
    CAPTURE_END_MARKER,
    DEV_CMD_TIMEOUT_MS,
    SHELL_OUTPUT_ENCODING,
    BootstrapError,
    is_critical_exception,
)
from compdblib.tool_detection import find_command_shell, get_dev_cmd_script_path

logger = logging.getLogger(__name__)

__all__ = [
    "ProcessCapture",
    "ProcessLauncher",
    "SubprocessLauncher",
    "EnvironmentBootstrap",
    "DevCmdEnvironmentBootstrap",
    "ToolchainEnvironmentProvider",
    "build_dev_cmd_arguments",
    "parse_captured_environment",
]

MSG_SCRIPT_NOT_FOUND = "Toolchain bootstrap script not found: %s"
MSG_TIMED_OUT = "Timed out after %dms waiting for the toolchain bootstrap script to finish"
MSG_NO_SETTINGS_FOUND = "No environment settings were captured from the toolchain bootstrap script"
MSG_FETCH_FAILED = "Failed to capture the toolchain environment: %s"


@dataclass
class ProcessCapture:
    """Output of a finished (or killed) process.

    Attributes:
        lines: Standard output lines, without line endings
        timed_out: True if the process was still running at the timeout and was killed
    """

    lines: List[str] = field(default_factory=list)
    timed_out: bool = False


class ProcessLauncher:
    """Runs a command line and captures its standard output."""

    def spawn_and_capture(self, executable: str, arguments: str, timeout_s: float) -> ProcessCapture:
        raise NotImplementedError


class SubprocessLauncher(ProcessLauncher):
    """ProcessLauncher backed by subprocess.Popen.

    Standard output is read as bytes and decoded with the given encoding. The
    default matches the "/U" switch passed to cmd.exe by build_dev_cmd_arguments.
    """

    def __init__(self, encoding: str = SHELL_OUTPUT_ENCODING):
        self.encoding = encoding

    def spawn_and_capture(self, executable: str, arguments: str, timeout_s: float) -> ProcessCapture:
        command_line = f'"{executable}" {arguments}'
        # cmd.exe parses its own command line; elsewhere split it POSIX-style
        args = command_line if os.name == "nt" else shlex.split(command_line)

        try:
            process = subprocess.Popen(args, stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL)
        except OSError as e:
            raise BootstrapError(f"Failed to start {executable}: {e}") from e

        try:
            output, _ = process.communicate(timeout=timeout_s)
        except subprocess.TimeoutExpired:
            self._kill(process)
            return ProcessCapture(timed_out=True)

        return ProcessCapture(lines=self.decode_output(output))

    def decode_output(self, output: Optional[bytes]) -> List[str]:
        """Decode raw process output into lines without line endings."""
        if not output:
            return []
        text = output.decode(self.encoding, errors="replace")
        return text.lstrip("\ufeff").splitlines()

    @staticmethod
    def _kill(process: "subprocess.Popen[bytes]") -> None:
        if process.poll() is None:
            try:
                process.kill()
            except OSError:
                # Already exited between poll() and kill()
                pass
        try:
            process.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            logger.warning("Toolchain bootstrap process %d did not exit after kill", process.pid)


def build_dev_cmd_arguments(script_path: str, script_params: Optional[str], unique_id: str) -> str:
    """Build the command shell arguments that run the script and dump the environment.

    Args:
        script_path: Path to VsDevCmd.bat
        script_params: Extra parameters for the script (e.g. "-arch=amd64"), may be None
        unique_id: Identifier appended to the capture markers

    Returns:
        Argument string for cmd.exe
    """
    script_command = f'"{script_path}" {script_params or ""}'.rstrip()
    commands = [
        "/U /K set VSCMD_SKIP_SENDTELEMETRY=1",
        script_command,
        f"echo {CAPTURE_BEGIN_MARKER} {unique_id}",
        "set",
        f"echo {CAPTURE_END_MARKER} {unique_id}",
    ]
    return " && ".join(commands)


def parse_captured_environment(lines: Iterable[str], unique_id: str) -> Dict[str, str]:
    """Extract NAME=value settings printed between the capture markers.

    Args:
        lines: Process output lines
        unique_id: Identifier used in the markers

    Returns:
        Captured settings (empty if the begin marker never appeared)
    """
    begin_marker = f"{CAPTURE_BEGIN_MARKER} {unique_id}"
    end_marker = f"{CAPTURE_END_MARKER} {unique_id}"

    settings: Dict[str, str] = {}
    capturing = False
    for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        stripped = line.strip()

        if not capturing:
            if stripped == begin_marker:
                capturing = True
            continue

        if stripped == end_marker:
            break

        name, separator, value = line.partition("=")
        if not separator or not name.strip():
            continue
        settings[name] = value

    return settings


class EnvironmentBootstrap:
    """Fetches a toolchain environment snapshot for a script parameter string."""

    def fetch(self, script_params: Optional[str]) -> Optional[Dict[str, str]]:
        raise NotImplementedError


class DevCmdEnvironmentBootstrap(EnvironmentBootstrap):
    """Captures the environment set up by VsDevCmd.bat."""

    def __init__(
        self,
        install_root_dir: str,
        launcher: Optional[ProcessLauncher] = None,
        timeout_ms: int = DEV_CMD_TIMEOUT_MS,
        command_shell: Optional[str] = None,
    ):
        self.install_root_dir = install_root_dir
        self.launcher = launcher or SubprocessLauncher()
        self.timeout_ms = timeout_ms
        self.command_shell = command_shell
        self.unique_id = uuid.uuid4().hex

    @property
    def script_path(self) -> str:
        return get_dev_cmd_script_path(self.install_root_dir)

    def fetch(self, script_params: Optional[str]) -> Optional[Dict[str, str]]:
        """Run the bootstrap script and capture the environment it produces.

        Args:
            script_params: Extra parameters for VsDevCmd.bat, may be None

        Returns:
            Captured environment, or None on any recoverable failure
        """
        try:
            return self._fetch(script_params)
        except Exception as e:  # pylint: disable=broad-except
            if is_critical_exception(e):
                raise
            logger.warning(MSG_FETCH_FAILED, e)
            return None

    def _fetch(self, script_params: Optional[str]) -> Optional[Dict[str, str]]:
        script_path = self.script_path
        if not os.path.isfile(script_path):
            logger.info(MSG_SCRIPT_NOT_FOUND, script_path)
            return None

        shell = self.command_shell
        if shell is None:
            shell_info = find_command_shell()
            if not shell_info.is_found():
                raise BootstrapError("No command shell found (COMSPEC is not set and cmd.exe is not on PATH)")
            shell = shell_info.command
            assert shell is not None  # For type checker

        arguments = build_dev_cmd_arguments(script_path, script_params, self.unique_id)
        logger.debug("Running toolchain bootstrap: %s %s", shell, arguments)

        capture = self.launcher.spawn_and_capture(shell, arguments, self.timeout_ms / 1000.0)
        if capture.timed_out:
            logger.warning(MSG_TIMED_OUT, self.timeout_ms)
            return None

        settings = parse_captured_environment(capture.lines, self.unique_id)
        if not settings:
            logger.warning(MSG_NO_SETTINGS_FOUND)
            return None

        logger.debug("Captured %d toolchain environment settings", len(settings))
        return settings


class ToolchainEnvironmentProvider:
    """Caches toolchain environment snapshots by script parameter string.

    Only successful fetches are cached. A failure (missing script, timeout, no
    output) is returned to the caller and retried on the next request.
    """

    def __init__(self, bootstrap: EnvironmentBootstrap):
        self.bootstrap = bootstrap
        self._cache: Dict[str, Dict[str, str]] = {}
        self._lock = asyncio.Lock()

    async def get_async(self, script_params: Optional[str]) -> Optional[Dict[str, str]]:
        """Return the toolchain environment for the given script parameters.

        Args:
            script_params: Extra parameters for the bootstrap script, may be None

        Returns:
            Environment snapshot, or None if it could not be captured
        """
        key = script_params or ""

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Toolchain environment cache hit for '%s'", key)
            return cached

        async with self._lock:
            # Another caller may have fetched it while we were waiting
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Toolchain environment cache hit for '%s' after waiting", key)
                return cached

            logger.debug("Toolchain environment cache miss for '%s', fetching", key)
            loop = asyncio.get_running_loop()
            snapshot = await loop.run_in_executor(None, self.bootstrap.fetch, script_params)

            if snapshot is not None:
                self._cache[key] = snapshot
            else:
                logger.debug("Toolchain environment fetch for '%s' failed, not caching", key)
            return snapshot

    def clear(self) -> None:
        """Drop all cached snapshots."""
        self._cache.clear()
