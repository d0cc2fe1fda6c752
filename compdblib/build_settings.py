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
"""Discovery and parsing of CMakeSettings.json.

CMakeSettings.json lists named build configurations, each with a build root
template:

    {
      "configurations": [
        { "name": "x64-Debug", "generator": "Ninja", "buildRoot": "${projectDir}\\out\\build\\${name}" }
      ]
    }

A missing file and an unparseable file both yield None. Callers that need to
tell them apart get a richer answer from CompilationDatabaseLocator.
"""

import os
import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from compdblib.constants import CMAKE_SETTINGS_JSON, CMAKE_LISTS_TXT, is_critical_exception, require_argument

logger = logging.getLogger(__name__)

__all__ = ["BuildConfigurationDescriptor", "BuildSettings", "BuildSettingsLookup", "BuildSettingsLocator", "parse_build_settings"]


@dataclass(frozen=True)
class BuildConfigurationDescriptor:
    """One named configuration from CMakeSettings.json.

    Attributes:
        name: Configuration name (e.g. "x64-Debug")
        build_root: Build root template, may contain ${...} macros
        generator: CMake generator name (e.g. "Ninja")
    """

    name: str
    build_root: Optional[str] = None
    generator: Optional[str] = None


@dataclass(frozen=True)
class BuildSettings:
    """Parsed CMakeSettings.json."""

    configurations: Tuple[BuildConfigurationDescriptor, ...] = ()

    def find_configuration(self, name: str) -> Optional[BuildConfigurationDescriptor]:
        """Find a configuration by exact (case-sensitive) name."""
        for configuration in self.configurations:
            if configuration.name == name:
                return configuration
        return None


@dataclass(frozen=True)
class BuildSettingsLookup:
    """Result of a successful BuildSettingsLocator.find().

    Attributes:
        settings: Parsed settings
        settings_file_path: Absolute path of CMakeSettings.json
        root_descriptor_path: Absolute path of the root CMakeLists.txt
    """

    settings: BuildSettings
    settings_file_path: str
    root_descriptor_path: str


def _optional_string(item: dict, key: str) -> Optional[str]:
    value = item.get(key)
    return value if isinstance(value, str) else None


def parse_build_settings(data: Any) -> BuildSettings:
    """Convert decoded CMakeSettings.json content to BuildSettings.

    Args:
        data: Decoded JSON document

    Returns:
        Parsed settings. Configuration items that are not objects are skipped.

    Raises:
        ValueError: If the document or its configurations list has the wrong type
    """
    if not isinstance(data, dict):
        raise ValueError(f"Invalid {CMAKE_SETTINGS_JSON} format: expected object, got {type(data).__name__}")

    raw_configurations = data.get("configurations", [])
    if raw_configurations is None:
        raw_configurations = []
    if not isinstance(raw_configurations, list):
        raise ValueError(f"Invalid {CMAKE_SETTINGS_JSON} format: 'configurations' must be a list, got {type(raw_configurations).__name__}")

    configurations: List[BuildConfigurationDescriptor] = []
    for item in raw_configurations:
        if not isinstance(item, dict):
            logger.debug("Skipping invalid configuration entry: %s", item)
            continue
        configurations.append(
            BuildConfigurationDescriptor(
                name=_optional_string(item, "name") or "",
                build_root=_optional_string(item, "buildRoot"),
                generator=_optional_string(item, "generator"),
            )
        )

    return BuildSettings(configurations=tuple(configurations))


class BuildSettingsLocator:
    """Finds and parses CMakeSettings.json directly under a workspace root."""

    def find(self, root_directory: Optional[str]) -> Optional[BuildSettingsLookup]:
        """Look for CMakeSettings.json under root_directory.

        Args:
            root_directory: Workspace root directory

        Returns:
            BuildSettingsLookup, or None if the file is missing or cannot be parsed

        Raises:
            ArgumentError: If root_directory is None or empty
        """
        require_argument(root_directory, "root_directory")
        assert root_directory is not None  # For type checker

        settings_file_path = os.path.abspath(os.path.join(root_directory, CMAKE_SETTINGS_JSON))
        if not os.path.isfile(settings_file_path):
            logger.debug("No %s found at %s", CMAKE_SETTINGS_JSON, settings_file_path)
            return None

        logger.debug("Reading build settings from %s", settings_file_path)
        try:
            with open(settings_file_path, "r", encoding="utf-8-sig") as f:
                settings = parse_build_settings(json.load(f))
        except Exception as e:  # pylint: disable=broad-except
            if is_critical_exception(e):
                raise
            logger.warning("Failed to parse %s: %s", settings_file_path, e)
            return None

        root_descriptor_path = os.path.abspath(os.path.join(root_directory, CMAKE_LISTS_TXT))
        return BuildSettingsLookup(settings=settings, settings_file_path=settings_file_path, root_descriptor_path=root_descriptor_path)
