#!/usr/bin/env python3
#****************************************************************************************************************************************************
#* BSD 3-Clause License
#*
#* Copyright (c) 2025, Mana Battery
#* All rights reserved.
#*
#* Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
#*
#* 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
#* 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
#*    documentation and/or other materials provided with the distribution.
#* 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
#*    software without specific prior written permission.
#*
#* THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
#* THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
#* CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
#* PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
#* LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
#* EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
#****************************************************************************************************************************************************
"""Pytest configuration and shared fixtures for compdb tests.

Fixtures build small CMake workspaces on disk:
- workspace: bare root directory with a CMakeLists.txt
- write_json: helper that writes a JSON document relative to a directory
- default_layout_workspace: database at <root>/out/build/x64-Debug
- settings_workspace: CMakeSettings.json with a templated buildRoot
"""

import os
import sys
import json
import tempfile
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List
import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from compdblib import tool_detection  # noqa: E402


@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Create a temporary directory for tests.

    Scope: function (default)
    Use for: File I/O operations that need isolation
    """
    tmpdir = tempfile.mkdtemp(prefix="compdb_test_")
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture(autouse=True)
def clean_tool_cache() -> Generator[None, None, None]:
    """Reset the session tool detection cache around every test."""
    tool_detection.clear_cache()
    yield
    tool_detection.clear_cache()


@pytest.fixture
def write_json() -> Callable[..., str]:
    """Return a helper that writes a JSON document and returns its path.

    Usage:
        path = write_json(root, ".vs", "ProjectSettings.json", data={...})
    """

    def _write(base: str, *parts: str, data: Any) -> str:
        path = os.path.join(base, *parts)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        return path

    return _write


@pytest.fixture
def workspace(temp_dir: str) -> str:
    """Create a workspace root containing only CMakeLists.txt.

    Scope: function
    Dependencies: temp_dir
    """
    root = os.path.join(temp_dir, "proj")
    os.makedirs(root)
    Path(root, "CMakeLists.txt").write_text("cmake_minimum_required(VERSION 3.20)\nproject(proj)\n", encoding="utf-8")
    return root


def make_entries(root: str, relative_files: List[str]) -> List[Dict[str, Any]]:
    """Build compile_commands.json entries for files below root."""
    return [
        {"directory": os.path.join(root, "out", "build", "x64-Debug"), "file": os.path.join(root, rel), "arguments": ["cl.exe", "/c", os.path.join(root, rel)]}
        for rel in relative_files
    ]


@pytest.fixture
def default_layout_workspace(workspace: str, write_json: Callable[..., str]) -> str:
    """Workspace with a compilation database at the default build root.

    Scope: function
    Dependencies: workspace, write_json
    Files in the database: src/main.cpp, src/widget.cpp, lib/util.c
    """
    write_json(
        workspace,
        "out",
        "build",
        "x64-Debug",
        "compile_commands.json",
        data=make_entries(workspace, [os.path.join("src", "main.cpp"), os.path.join("src", "widget.cpp"), os.path.join("lib", "util.c")]),
    )
    return workspace


@pytest.fixture
def settings_workspace(workspace: str, write_json: Callable[..., str]) -> str:
    """Workspace whose CMakeSettings.json places the build in <root>/build/<name>.

    Scope: function
    Dependencies: workspace, write_json
    Active configuration: x64-Release (from .vs/ProjectSettings.json)
    """
    write_json(
        workspace,
        "CMakeSettings.json",
        data={
            "configurations": [
                {"name": "x64-Debug", "generator": "Ninja", "buildRoot": "${workspaceRoot}/build/${name}"},
                {"name": "x64-Release", "generator": "Ninja", "buildRoot": "${workspaceRoot}/build/${name}"},
            ]
        },
    )
    write_json(workspace, ".vs", "ProjectSettings.json", data={"CurrentProjectSetting": "x64-Release"})
    write_json(workspace, "build", "x64-Release", "compile_commands.json", data=make_entries(workspace, [os.path.join("src", "main.cpp")]))
    return workspace
