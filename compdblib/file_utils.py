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
"""File classification and path comparison utilities.

Compilation databases produced on Windows mix separators and drive-letter case
("C:\\src\\a.cpp" vs "c:/src/A.cpp"), so every comparison here works on a
normalized form: forward slashes, collapsed "." and ".." segments, lower case.
"""

import os
import enum
import posixpath
from typing import List, Optional

from compdblib.constants import CODE_FILE_EXTENSIONS, HEADER_FILE_EXTENSIONS

__all__ = [
    "SourceKind",
    "classify_source_file",
    "is_header_file",
    "normalize_path",
    "is_matching_path",
    "is_path_rooted_under",
    "get_file_name",
    "get_directory_name",
    "get_candidate_code_files",
    "resolve_entry_path",
]


class SourceKind(enum.IntEnum):
    """Kind of a file being looked up in the compilation database.

    Attributes:
        CODE: Compiled directly; appears as a "file" entry
        HEADER: Never compiled directly; flags come from a related code file
    """

    CODE = 0
    HEADER = 1


def _extension(path: str) -> str:
    return posixpath.splitext(path.replace("\\", "/"))[1].lower()


def is_header_file(path: str) -> bool:
    """Check if a file is a C/C++ header (case-insensitive extension match).

    Args:
        path: File path

    Returns:
        True if the extension is one of HEADER_FILE_EXTENSIONS
    """
    return _extension(path) in HEADER_FILE_EXTENSIONS


def classify_source_file(path: str) -> SourceKind:
    """Classify a file as HEADER or CODE. Anything that is not a header is CODE."""
    return SourceKind.HEADER if is_header_file(path) else SourceKind.CODE


def normalize_path(path: str) -> str:
    """Normalize a path for comparison.

    Args:
        path: Path using either separator style

    Returns:
        Lower-case path with forward slashes and no redundant segments
    """
    if not path:
        return ""
    normalized = posixpath.normpath(path.replace("\\", "/"))
    return normalized.lower()


def is_matching_path(path1: str, path2: str) -> bool:
    """Check if two paths refer to the same file (case and separator insensitive)."""
    return normalize_path(path1) == normalize_path(path2)


def is_path_rooted_under(path: str, root_directory: str) -> bool:
    """Check if path is located under root_directory (at any depth).

    Args:
        path: File path to check
        root_directory: Candidate ancestor directory

    Returns:
        True if path is inside root_directory
    """
    if not path or not root_directory:
        return False

    root = normalize_path(root_directory)
    if not root.endswith("/"):
        root += "/"
    return normalize_path(path).startswith(root)


def get_file_name(path: str) -> str:
    """Return the last segment of a path, accepting either separator."""
    return posixpath.basename(path.replace("\\", "/"))


def get_directory_name(path: str) -> str:
    """Return the directory portion of a path, accepting either separator."""
    return posixpath.dirname(path.replace("\\", "/"))


def get_candidate_code_files(header_path: str, extensions: Optional[List[str]] = None) -> List[str]:
    """Build the code files that may own a header by swapping its extension.

    Args:
        header_path: Header file path (e.g. "/src/widget.h")
        extensions: Code extensions in priority order (default: CODE_FILE_EXTENSIONS)

    Returns:
        Candidate paths in priority order (e.g. ["/src/widget.cpp", "/src/widget.cxx", ...])

    Example:
        >>> get_candidate_code_files("/src/widget.h")
        ['/src/widget.cpp', '/src/widget.cxx', '/src/widget.cc', '/src/widget.c']
    """
    if extensions is None:
        extensions = list(CODE_FILE_EXTENSIONS)

    stem = posixpath.splitext(header_path.replace("\\", "/"))[0]
    return [stem + ext for ext in extensions]


def resolve_entry_path(file_path: str, directory: str) -> str:
    """Resolve a possibly relative compilation database "file" against its "directory".

    Args:
        file_path: Value of the entry's "file" field
        directory: Value of the entry's "directory" field

    Returns:
        Absolute path when file_path is relative and directory is set, file_path otherwise
    """
    if not file_path or not directory:
        return file_path
    if _is_absolute(file_path):
        return file_path
    return posixpath.join(directory.replace("\\", "/"), file_path.replace("\\", "/"))


def _is_absolute(path: str) -> bool:
    # Accept both POSIX and Windows drive / UNC forms regardless of host OS
    if os.path.isabs(path) or path.startswith(("\\", "/")):
        return True
    return len(path) > 1 and path[1] == ":"
