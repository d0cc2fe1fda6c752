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
"""Shared constants for the compdb tools.

This module provides centralized constants used across the compilation database
locator, the entry resolver and the toolchain environment provider so that file
names, defaults and timeouts stay consistent.
"""

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS = 0
EXIT_INVALID_ARGS = 1
EXIT_RUNTIME_ERROR = 2
EXIT_NOT_FOUND = 2  # Database, entry or environment could not be resolved
EXIT_KEYBOARD_INTERRUPT = 130

# =============================================================================
# Build System Constants
# =============================================================================

COMPILE_COMMANDS_JSON = "compile_commands.json"  # Standard compilation database filename
CMAKE_SETTINGS_JSON = "CMakeSettings.json"  # Optional per-workspace build settings file
CMAKE_LISTS_TXT = "CMakeLists.txt"  # Root project descriptor

# Default build root used when no CMakeSettings.json exists: <root>/out/build/<config>
DEFAULT_BUILD_ROOT_PARTS = ("out", "build")

# =============================================================================
# Active Configuration Constants
# =============================================================================

# The IDE writes the selected configuration to <root>/.vs/ProjectSettings.json
PROJECT_SETTINGS_DIR = ".vs"
PROJECT_SETTINGS_JSON = "ProjectSettings.json"
CURRENT_PROJECT_SETTING_KEY = "CurrentProjectSetting"
DEFAULT_CONFIGURATION_NAME = "x64-Debug"

# =============================================================================
# File Classification
# =============================================================================

# Candidate code extensions for a header, in lookup priority order
CODE_FILE_EXTENSIONS = (".cpp", ".cxx", ".cc", ".c")
HEADER_FILE_EXTENSIONS = (".h", ".hh", ".hpp", ".hxx")

# =============================================================================
# Toolchain Environment Constants
# =============================================================================

DEV_CMD_SCRIPT_PARTS = ("Common7", "Tools", "VsDevCmd.bat")
DEV_CMD_TIMEOUT_MS = 30000  # Hard timeout for the bootstrap process
CAPTURE_BEGIN_MARKER = "SONARLINT_BEGIN_CAPTURE"
CAPTURE_END_MARKER = "SONARLINT_END_CAPTURE"
DEFAULT_COMMAND_SHELL = "cmd.exe"
SHELL_OUTPUT_ENCODING = "utf-16-le"  # cmd.exe /U writes echo and set output as UTF-16LE

# =============================================================================
# Cache Constants
# =============================================================================

CACHE_DIR = ".compdb_cache"  # Cache directory name inside the chosen cache root
TOOLCHAIN_ENV_CACHE_PREFIX = "toolchain_env_"
MAX_CACHE_AGE_HOURS = 168  # Maximum cache age in hours (7 days)

# =============================================================================
# Exception Classes
# =============================================================================


class CompDbError(Exception):
    """Base exception for all compdb errors.

    All compdb exceptions carry an exit_code attribute that indicates
    what exit code the program should use when this error is caught at the
    main entry point.
    """

    def __init__(self, message: str, exit_code: int = EXIT_RUNTIME_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


# Validation errors (EXIT_INVALID_ARGS)
class ValidationError(CompDbError):
    """Raised when input validation fails (arguments, paths, etc)."""

    def __init__(self, message: str):
        super().__init__(message, EXIT_INVALID_ARGS)


class ArgumentError(ValidationError):
    """Raised when a required argument is missing or empty."""


class WorkspaceError(ValidationError):
    """Raised when the workspace root cannot be determined."""


# External tool errors
class ExternalToolError(CompDbError):
    """Raised when external tools (command shell, bootstrap script) fail."""


class BootstrapError(ExternalToolError):
    """Raised when the toolchain bootstrap process cannot be started."""


# Exceptions that must never be absorbed by the "return None" recovery paths
CRITICAL_EXCEPTION_TYPES = (MemoryError, RecursionError, SystemExit, KeyboardInterrupt, GeneratorExit)


def is_critical_exception(exc: BaseException) -> bool:
    """Check whether an exception must propagate instead of being logged and absorbed.

    Args:
        exc: The exception that was caught

    Returns:
        True if the exception is critical (out of memory, interpreter exit, etc.)
    """
    return isinstance(exc, CRITICAL_EXCEPTION_TYPES)


def require_argument(value: object, name: str) -> None:
    """Raise ArgumentError if a required argument is None or empty."""
    if value is None or (isinstance(value, str) and not value):
        raise ArgumentError(f"{name} must not be empty")
