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
"""Detection of the external tools used to capture the toolchain environment.

The toolchain environment is produced by running the IDE's VsDevCmd.bat inside
the Windows command shell. Detection results are cached within the Python
process session to avoid repeated filesystem and PATH lookups.
"""

import os
import shutil
import logging
from typing import Optional, Dict
from dataclasses import dataclass

from compdblib.constants import DEV_CMD_SCRIPT_PARTS, DEFAULT_COMMAND_SHELL

logger = logging.getLogger(__name__)

__all__ = ["ToolInfo", "clear_cache", "find_command_shell", "find_dev_cmd_script", "get_dev_cmd_script_path"]

# Session-level cache for tool detection results (keyed by function name and argument)
_tool_cache: Dict[str, "ToolInfo"] = {}


@dataclass
class ToolInfo:
    """Information about a detected external tool.

    Attributes:
        command: Absolute path or command name used to run the tool
        source: Where the tool was found (e.g. "COMSPEC", "PATH", "install root")
    """

    command: Optional[str]
    source: Optional[str] = None

    def is_found(self) -> bool:
        """Check if tool was found.

        Returns:
            True if command is not None
        """
        return self.command is not None


def clear_cache() -> None:
    """Clear the tool detection cache.

    Useful for testing or when environment changes during process lifetime.
    """
    _tool_cache.clear()
    logger.debug("Tool detection cache cleared")


def find_command_shell() -> ToolInfo:
    """Find the Windows command shell.

    Tries COMSPEC first (as cmd.exe itself does), then cmd.exe on PATH.

    Returns:
        ToolInfo with the shell path if found, or empty ToolInfo if not found
    """
    cache_key = "find_command_shell"
    if cache_key in _tool_cache:
        return _tool_cache[cache_key]

    comspec = os.environ.get("COMSPEC")
    if comspec:
        logger.debug("Using command shell from COMSPEC: %s", comspec)
        tool_info = ToolInfo(command=comspec, source="COMSPEC")
    else:
        resolved = shutil.which(DEFAULT_COMMAND_SHELL)
        if resolved:
            logger.debug("Found %s on PATH: %s", DEFAULT_COMMAND_SHELL, resolved)
            tool_info = ToolInfo(command=resolved, source="PATH")
        else:
            logger.debug("%s not found", DEFAULT_COMMAND_SHELL)
            tool_info = ToolInfo(command=None)

    _tool_cache[cache_key] = tool_info
    return tool_info


def get_dev_cmd_script_path(install_root_dir: str) -> str:
    """Get the expected VsDevCmd.bat location below an IDE install root."""
    return os.path.join(install_root_dir, *DEV_CMD_SCRIPT_PARTS)


def find_dev_cmd_script(install_root_dir: str) -> ToolInfo:
    """Find VsDevCmd.bat below an IDE install root.

    Only successful lookups are cached, so a script installed later in the
    session is still picked up.

    Args:
        install_root_dir: IDE installation root (e.g. "C:\\Program Files\\Microsoft Visual Studio\\2022\\Community")

    Returns:
        ToolInfo with the script path if it exists, or empty ToolInfo if not found
    """
    cache_key = f"find_dev_cmd_script:{install_root_dir}"
    if cache_key in _tool_cache:
        return _tool_cache[cache_key]

    script_path = get_dev_cmd_script_path(install_root_dir)
    if not os.path.isfile(script_path):
        logger.debug("Bootstrap script not found: %s", script_path)
        return ToolInfo(command=None)

    logger.debug("Found bootstrap script: %s", script_path)
    tool_info = ToolInfo(command=script_path, source="install root")
    _tool_cache[cache_key] = tool_info
    return tool_info
