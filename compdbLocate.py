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
"""Locate the compilation database of the active CMake configuration.

PURPOSE:
    Shows which compile_commands.json the IDE would use for an open folder, and
    which entry (compiler command line) would be used to analyze a given file.

WHAT IT DOES:
    - Reads the active configuration from <root>/.vs/ProjectSettings.json (default: x64-Debug)
    - Reads CMakeSettings.json and expands the configuration's buildRoot
      (${workspaceRoot}, ${name}, ${env.VAR}, ${workspaceHash}, ...)
    - Falls back to <root>/out/build/<config> when there is no CMakeSettings.json
    - With --file: finds the entry for the file; headers borrow the flags of a
      related source file

REQUIREMENTS:
    - Python 3.10+
    - GitPython, packaging, colorama

EXAMPLES:
    # Database of the workspace that contains the current directory
    ./compdbLocate.py

    # Entry used for a header
    ./compdbLocate.py ~/src/engine --file ~/src/engine/core/Widget.h

    # Machine-readable output
    ./compdbLocate.py ~/src/engine --file ~/src/engine/core/Widget.cpp --format json

Exit Codes:
    0: Success
    1: Invalid arguments
    2: Database or entry not found
"""

import os
import sys
import json
import signal
import logging
import argparse
from typing import Any, Dict, List, Optional

__version__ = "1.0.0"

from compdblib.color_utils import Colors, print_error, print_warning, print_success, print_key_values, should_use_color
from compdblib.constants import (
    EXIT_SUCCESS,
    EXIT_INVALID_ARGS,
    EXIT_NOT_FOUND,
    EXIT_KEYBOARD_INTERRUPT,
    EXIT_RUNTIME_ERROR,
    CompDbError,
)
from compdblib.package_verification import require_all_packages
from compdblib.active_config import ActiveConfigurationResolver
from compdblib.compdb_locator import CompilationDatabaseLocator, GitWorkspaceRootProvider, StaticWorkspaceRootProvider, WorkspaceRootProvider
from compdblib.compdb_entry import CompilationDatabaseEntry, CompilationEntryResolver
from compdblib.file_utils import classify_source_file

__all__ = ["main", "build_report"]


def signal_handler(signum: int, frame: Any) -> None:
    """Handle interrupt signals gracefully."""
    print_warning("\nInterrupted by user. Exiting...", prefix=False)
    sys.exit(EXIT_KEYBOARD_INTERRUPT)


def _create_root_provider(root: Optional[str], file_path: Optional[str]) -> WorkspaceRootProvider:
    if root:
        return StaticWorkspaceRootProvider(os.path.abspath(root))
    return GitWorkspaceRootProvider(file_path or os.getcwd())


def build_report(root_provider: WorkspaceRootProvider, file_path: Optional[str]) -> Dict[str, Any]:
    """Resolve the database (and optionally an entry) and collect the results.

    Args:
        root_provider: Supplies the workspace root
        file_path: File to look up, or None to only locate the database

    Returns:
        Dictionary with root, configuration, database and entry keys
    """
    locator = CompilationDatabaseLocator(root_provider)
    root_directory = root_provider.find_root_directory()

    report: Dict[str, Any] = {
        "version": __version__,
        "root": root_directory,
        "configuration": ActiveConfigurationResolver().get_active_config(root_directory) if root_directory else None,
        "database": locator.locate(),
    }

    if file_path is not None:
        entry: Optional[CompilationDatabaseEntry] = CompilationEntryResolver(locator).get_config(file_path)
        report["file"] = file_path
        report["kind"] = classify_source_file(file_path).name.lower()
        report["entry"] = entry.to_dict() if entry is not None else None

    return report


def _print_text_report(report: Dict[str, Any]) -> None:
    print(f"{Colors.BRIGHT}{Colors.CYAN}=== Compilation Database ==={Colors.RESET}")
    print_key_values({"Workspace root": report["root"], "Configuration": report["configuration"], "Database": report["database"]})

    if "file" not in report:
        return

    print(f"\n{Colors.BRIGHT}{Colors.CYAN}=== Entry for {report['kind']} file ==={Colors.RESET}")
    entry = report["entry"]
    if entry is None:
        print_warning(f"No entry found for {report['file']}")
        return

    values: Dict[str, Any] = {"File": entry["file"], "Directory": entry["directory"]}
    if "arguments" in entry:
        values["Arguments"] = " ".join(entry["arguments"])
    if "command" in entry:
        values["Command"] = entry["command"]
    print_key_values(values)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the script.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    signal.signal(signal.SIGINT, signal_handler)

    parser = argparse.ArgumentParser(
        description="Locate the compilation database of the active CMake configuration.",
        epilog=f"Version {__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("root", nargs="?", metavar="ROOT", help="Workspace root directory (default: discovered from --file or the current directory)")
    parser.add_argument("--file", "-f", metavar="FILE", help="Source or header file to look up")
    parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format (default: text)")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s: %(message)s")

    if not should_use_color(no_color=args.no_color):
        Colors.disable()

    require_all_packages("compilation database lookup")

    if args.root and not os.path.isdir(args.root):
        print_error(f"Workspace root '{args.root}' is not a directory")
        return EXIT_INVALID_ARGS

    file_path = os.path.abspath(args.file) if args.file else None

    report = build_report(_create_root_provider(args.root, file_path), file_path)

    if args.format == "json":
        print(json.dumps(report, indent=2))
    else:
        _print_text_report(report)

    if report["root"] is None:
        if args.format == "text":
            print_error("Unable to determine the workspace root (pass ROOT explicitly)")
        return EXIT_INVALID_ARGS

    if report["database"] is None or (file_path is not None and report["entry"] is None):
        return EXIT_NOT_FOUND

    if args.format == "text":
        print_success("\nDone.")
    return EXIT_SUCCESS


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print_warning("Interrupted.", prefix=False)
        sys.exit(EXIT_KEYBOARD_INTERRUPT)
    except CompDbError as e:
        print_error(str(e))
        sys.exit(e.exit_code)
    except Exception as e:  # pylint: disable=broad-except
        print_error(f"Fatal error: {e}")
        sys.exit(EXIT_RUNTIME_ERROR)
