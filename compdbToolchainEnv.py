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
"""Capture the toolchain environment produced by VsDevCmd.bat.

PURPOSE:
    Analysis of MSVC projects needs the INCLUDE, LIB and PATH values that the
    developer command prompt sets up. This tool runs the bootstrap script once
    and prints the resulting environment.

WHAT IT DOES:
    - Runs "<install root>\\Common7\\Tools\\VsDevCmd.bat <params>" in the command shell
    - Captures the "set" output between unique marker lines
    - Kills the process if it does not finish within the timeout
    - Optionally keeps the snapshot on disk (--cache-dir) so later runs are instant

REQUIREMENTS:
    - Python 3.10+
    - Windows with a Visual Studio installation
    - GitPython, packaging, colorama

EXAMPLES:
    ./compdbToolchainEnv.py --install-root "C:\\Program Files\\Microsoft Visual Studio\\2022\\Community"
    ./compdbToolchainEnv.py --params=-arch=amd64 --format json
    ./compdbToolchainEnv.py --params="-arch=amd64 -host_arch=amd64"
    ./compdbToolchainEnv.py --cache-dir %LOCALAPPDATA%\\compdb --only INCLUDE --only LIB

Exit Codes:
    0: Success
    1: Invalid arguments
    2: Environment could not be captured
"""

import os
import sys
import json
import signal
import asyncio
import logging
import argparse
from typing import Any, Dict, List, Optional

__version__ = "1.0.0"

from compdblib.color_utils import Colors, print_error, print_warning, print_info, print_key_values, should_use_color
from compdblib.constants import (
    EXIT_SUCCESS,
    EXIT_INVALID_ARGS,
    EXIT_NOT_FOUND,
    EXIT_KEYBOARD_INTERRUPT,
    EXIT_RUNTIME_ERROR,
    DEV_CMD_TIMEOUT_MS,
    MAX_CACHE_AGE_HOURS,
    CompDbError,
)
from compdblib.package_verification import require_all_packages
from compdblib.cache_utils import load_snapshot, save_snapshot, cleanup_old_caches
from compdblib.toolchain_env import DevCmdEnvironmentBootstrap, ToolchainEnvironmentProvider

__all__ = ["main", "capture_environment"]

INSTALL_ROOT_ENV_VAR = "VSINSTALLDIR"


def signal_handler(signum: int, frame: Any) -> None:
    """Handle interrupt signals gracefully."""
    print_warning("\nInterrupted by user. Exiting...", prefix=False)
    sys.exit(EXIT_KEYBOARD_INTERRUPT)


async def _fetch(bootstrap: DevCmdEnvironmentBootstrap, script_params: Optional[str]) -> Optional[Dict[str, str]]:
    provider = ToolchainEnvironmentProvider(bootstrap)
    return await provider.get_async(script_params)


def capture_environment(bootstrap: DevCmdEnvironmentBootstrap, script_params: Optional[str], cache_dir: Optional[str] = None) -> Optional[Dict[str, str]]:
    """Capture the toolchain environment, using the on-disk cache when given.

    Args:
        bootstrap: Configured bootstrap runner
        script_params: Extra parameters for VsDevCmd.bat
        cache_dir: Directory for persistent snapshots, or None to disable

    Returns:
        Environment snapshot, or None if it could not be captured
    """
    if cache_dir:
        cached = load_snapshot(cache_dir, script_params, bootstrap.script_path, MAX_CACHE_AGE_HOURS)
        if cached is not None:
            print_info("📦 Loading toolchain environment from cache", file=sys.stderr)
            return cached

    snapshot = asyncio.run(_fetch(bootstrap, script_params))

    if snapshot is not None and cache_dir:
        save_snapshot(cache_dir, script_params, snapshot, bootstrap.script_path)
        cleanup_old_caches(cache_dir, MAX_CACHE_AGE_HOURS)

    return snapshot


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the script.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    signal.signal(signal.SIGINT, signal_handler)

    parser = argparse.ArgumentParser(
        description="Capture the toolchain environment produced by VsDevCmd.bat.",
        epilog=f"Version {__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--install-root", metavar="DIR", default=os.environ.get(INSTALL_ROOT_ENV_VAR), help=f"IDE installation root (default: ${INSTALL_ROOT_ENV_VAR})")
    parser.add_argument("--params", default=None, help="Extra parameters passed to VsDevCmd.bat. Use the --params=VALUE form, since the values start with '-'")
    parser.add_argument("--timeout", type=float, default=DEV_CMD_TIMEOUT_MS / 1000.0, help="Timeout in seconds (default: %(default)s)")
    parser.add_argument("--cache-dir", metavar="DIR", help="Keep snapshots on disk in DIR")
    parser.add_argument("--only", action="append", metavar="NAME", help="Only print this variable (repeatable)")
    parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format (default: text)")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s: %(message)s")

    if not should_use_color(no_color=args.no_color):
        Colors.disable()

    require_all_packages("toolchain environment capture")

    if not args.install_root:
        print_error(f"No install root given (use --install-root or set {INSTALL_ROOT_ENV_VAR})")
        return EXIT_INVALID_ARGS

    if args.timeout <= 0:
        print_error("--timeout must be positive")
        return EXIT_INVALID_ARGS

    bootstrap = DevCmdEnvironmentBootstrap(args.install_root, timeout_ms=int(args.timeout * 1000))
    snapshot = capture_environment(bootstrap, args.params, args.cache_dir)

    if snapshot is None:
        print_error("Unable to capture the toolchain environment (run with --verbose for details)")
        return EXIT_NOT_FOUND

    if args.only:
        wanted = {name.upper() for name in args.only}
        snapshot = {name: value for name, value in snapshot.items() if name.upper() in wanted}

    if args.format == "json":
        print(json.dumps(dict(sorted(snapshot.items())), indent=2))
    else:
        print_key_values(dict(sorted(snapshot.items())))

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
