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
"""Git helpers for discovering the workspace root of a CMake project."""

import os
import logging
from typing import Optional

from git import Repo, InvalidGitRepositoryError
from git.exc import GitError, NoSuchPathError

from compdblib.constants import CMAKE_LISTS_TXT, CMAKE_SETTINGS_JSON

logger = logging.getLogger(__name__)

__all__ = ["find_git_repo", "find_workspace_root"]

WORKSPACE_MARKERS = (CMAKE_SETTINGS_JSON, CMAKE_LISTS_TXT)


def find_git_repo(start_path: str) -> Optional[str]:
    """Find the git repository root by searching upward from start_path.

    Args:
        start_path: Directory to start searching from

    Returns:
        Absolute path to git repository root, or None if not found
    """
    try:
        repo = Repo(start_path, search_parent_directories=True)
        repo_root = repo.working_dir
        if repo_root is not None:
            logger.debug("Found git repository at: %s", repo_root)
            return str(repo_root)
    except (InvalidGitRepositoryError, NoSuchPathError, GitError):
        pass
    return None


def _has_workspace_marker(directory: str) -> bool:
    return any(os.path.isfile(os.path.join(directory, marker)) for marker in WORKSPACE_MARKERS)


def find_workspace_root(start_path: str) -> Optional[str]:
    """Find the CMake workspace root containing start_path.

    Walks upward from start_path (a file or a directory) to the enclosing git
    repository root and returns the top-most directory on that walk containing
    CMakeSettings.json or CMakeLists.txt. Nested CMakeLists.txt files belong to
    sub-projects, so the top-most one wins.

    Args:
        start_path: File or directory inside the workspace

    Returns:
        Workspace root, the git root if no marker was found, or None outside a repository
    """
    start_dir = os.path.abspath(start_path)
    if not os.path.isdir(start_dir):
        start_dir = os.path.dirname(start_dir)

    repo_root = find_git_repo(start_dir)
    if repo_root is None:
        logger.debug("%s is not inside a git repository", start_dir)
        return None

    repo_root = os.path.realpath(repo_root)
    current = os.path.realpath(start_dir)
    workspace_root: Optional[str] = None

    while True:
        if _has_workspace_marker(current):
            workspace_root = current
        if current == repo_root:
            break
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent

    if workspace_root is None:
        logger.debug("No CMake workspace marker below %s, using repository root", repo_root)
        return repo_root

    logger.debug("Found workspace root at: %s", workspace_root)
    return workspace_root
