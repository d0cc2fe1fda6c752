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
"""Lookup of the compile_commands.json entry for a source or header file.

Code files are matched exactly. Headers never appear in the database, so their
flags are borrowed from a related code file, trying in order:

    1. same directory and name, code extension (widget.h -> widget.cpp)
    2. same name in any directory
    3. any code file under the header's directory
    4. the first entry of the database

Step 4 is deliberately loose: flags that are slightly wrong still give a far
better analysis than no flags at all.
"""

import os
import json
import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from compdblib.constants import is_critical_exception, require_argument
from compdblib.compdb_locator import CompilationDatabaseLocator
from compdblib.file_utils import (
    SourceKind,
    classify_source_file,
    get_candidate_code_files,
    get_directory_name,
    get_file_name,
    is_matching_path,
    is_path_rooted_under,
    resolve_entry_path,
)

logger = logging.getLogger(__name__)

__all__ = ["CompilationDatabaseEntry", "CompilationEntryResolver", "parse_compilation_database", "load_compilation_database"]

MSG_DATABASE_VANISHED = "Compilation database file not found: %s"
MSG_EMPTY_DATABASE = "Compilation database file is empty: %s"
MSG_BAD_DATABASE = "Failed to read compilation database file %s: %s"
MSG_NO_ENTRY = "No compilation database entry found for file: %s"
MSG_NO_ENTRY_FOR_HEADER = "No compilation database entry found for header file: %s"


@dataclass(frozen=True)
class CompilationDatabaseEntry:
    """One entry of compile_commands.json.

    Attributes:
        file: Source file path as written in the database
        directory: Working directory of the compilation
        command: Full command line string (if the database uses "command")
        arguments: Command line as a list (if the database uses "arguments")
    """

    file: str
    directory: str = ""
    command: Optional[str] = None
    arguments: Optional[Tuple[str, ...]] = None

    @property
    def resolved_file(self) -> str:
        """File path resolved against directory when it is relative."""
        return resolve_entry_path(self.file, self.directory)

    def to_dict(self) -> dict:
        """Convert back to the compile_commands.json object form."""
        result: dict = {"directory": self.directory, "file": self.file}
        if self.arguments is not None:
            result["arguments"] = list(self.arguments)
        if self.command is not None:
            result["command"] = self.command
        return result


def _entry_from_json(item: Any) -> CompilationDatabaseEntry:
    if not isinstance(item, dict):
        raise ValueError(f"Invalid compilation database entry: expected object, got {type(item).__name__}")

    file_value = item.get("file")
    directory = item.get("directory")
    command = item.get("command")
    arguments = item.get("arguments")

    return CompilationDatabaseEntry(
        file=file_value if isinstance(file_value, str) else "",
        directory=directory if isinstance(directory, str) else "",
        command=command if isinstance(command, str) else None,
        arguments=tuple(str(arg) for arg in arguments) if isinstance(arguments, list) else None,
    )


def parse_compilation_database(data: Any) -> List[CompilationDatabaseEntry]:
    """Convert decoded compile_commands.json content to entries.

    Args:
        data: Decoded JSON document

    Returns:
        Entries in database order

    Raises:
        ValueError: If the document is not a list of objects
    """
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"Invalid compile_commands.json format: expected list, got {type(data).__name__}")
    return [_entry_from_json(item) for item in data]


def load_compilation_database(database_path: str) -> List[CompilationDatabaseEntry]:
    """Read and parse a compile_commands.json file.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the content is not a valid compilation database
    """
    with open(database_path, "r", encoding="utf-8-sig") as f:
        content = f.read()
    if not content.strip():
        return []
    return parse_compilation_database(json.loads(content))


def _first(entries: Sequence[CompilationDatabaseEntry], predicate: Callable[[CompilationDatabaseEntry], bool]) -> Optional[CompilationDatabaseEntry]:
    for entry in entries:
        if entry.file and predicate(entry):
            return entry
    return None


def find_code_entry(file_path: str, entries: Sequence[CompilationDatabaseEntry]) -> Optional[CompilationDatabaseEntry]:
    """Find the first entry for exactly this file (normalized, case-insensitive)."""
    return _first(entries, lambda entry: is_matching_path(file_path, entry.resolved_file))


def find_entry_with_same_name(file_name: str, entries: Sequence[CompilationDatabaseEntry]) -> Optional[CompilationDatabaseEntry]:
    """Find the first entry whose file name matches, ignoring the directory."""
    wanted = file_name.lower()
    return _first(entries, lambda entry: get_file_name(entry.file).lower() == wanted)


def find_entry_under_root(root_directory: str, entries: Sequence[CompilationDatabaseEntry]) -> Optional[CompilationDatabaseEntry]:
    """Find the first entry located anywhere under root_directory."""
    return _first(entries, lambda entry: is_path_rooted_under(entry.resolved_file, root_directory))


def find_first_entry(entries: Sequence[CompilationDatabaseEntry]) -> Optional[CompilationDatabaseEntry]:
    """Find the first entry with a non-empty file."""
    return _first(entries, lambda entry: True)


class CompilationEntryResolver:
    """Returns the compilation database entry to use for a file."""

    def __init__(self, locator: CompilationDatabaseLocator):
        self.locator = locator

    def get_config(self, file_path: Optional[str]) -> Optional[CompilationDatabaseEntry]:
        """Return the compilation configuration for a file.

        Args:
            file_path: Absolute path of the source or header file

        Returns:
            Matching entry, or None if there is no database or no usable entry

        Raises:
            ArgumentError: If file_path is None or empty
        """
        require_argument(file_path, "file_path")
        assert file_path is not None  # For type checker

        database_path = self.locator.locate()
        if not database_path:
            return None

        if not os.path.isfile(database_path):
            logger.info(MSG_DATABASE_VANISHED, database_path)
            return None

        logger.debug("Reading compilation database from '%s'", database_path)
        try:
            entries = load_compilation_database(database_path)
        except Exception as e:  # pylint: disable=broad-except
            if is_critical_exception(e):
                raise
            logger.warning(MSG_BAD_DATABASE, database_path, e)
            return None

        if not entries:
            logger.info(MSG_EMPTY_DATABASE, database_path)
            return None

        start_time = time.time()
        if classify_source_file(file_path) == SourceKind.HEADER:
            entry = self._locate_matching_code_entry(file_path, entries)
        else:
            entry = self._locate_exact_code_entry(file_path, entries)
        logger.debug("Located entry in %.1fms", (time.time() - start_time) * 1000)

        return entry

    @staticmethod
    def _locate_exact_code_entry(file_path: str, entries: Sequence[CompilationDatabaseEntry]) -> Optional[CompilationDatabaseEntry]:
        logger.debug("Code file detected, searching for exact match: %s", file_path)

        entry = find_code_entry(file_path, entries)
        if entry is None:
            logger.info(MSG_NO_ENTRY, file_path)
        return entry

    @staticmethod
    def _locate_matching_code_entry(header_path: str, entries: Sequence[CompilationDatabaseEntry]) -> Optional[CompilationDatabaseEntry]:
        logger.debug("Header file detected, searching for matching code file: %s", header_path)

        candidates = get_candidate_code_files(header_path)

        for candidate in candidates:
            entry = find_code_entry(candidate, entries)
            if entry is not None:
                logger.debug("Header file: located matching code file with same name and path: %s", entry.file)
                return entry

        for candidate in candidates:
            entry = find_entry_with_same_name(get_file_name(candidate), entries)
            if entry is not None:
                logger.debug("Header file: located matching code file with same name: %s", entry.file)
                return entry

        entry = find_entry_under_root(get_directory_name(header_path), entries)
        if entry is not None:
            logger.debug("Header file: located code file under same root: %s", entry.file)
            return entry

        entry = find_first_entry(entries)
        if entry is not None:
            logger.debug("Header file: using first code file: %s", entry.file)
            return entry

        logger.info(MSG_NO_ENTRY_FOR_HEADER, header_path)
        return None
