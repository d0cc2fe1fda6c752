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
"""Location of compile_commands.json for the active build configuration.

Resolution order:
    1. CMakeSettings.json present: the active configuration's buildRoot template,
       expanded with MacroEvaluationEngine. A missing configuration or an empty
       template yields None; the default location is NOT tried, because the
       settings file decides where the build lives.
    2. No CMakeSettings.json: <root>/out/build/<active configuration>.

In both cases the result is only returned if compile_commands.json exists there.
"""

import os
import logging
from typing import Optional

from compdblib.constants import COMPILE_COMMANDS_JSON, CMAKE_SETTINGS_JSON, DEFAULT_BUILD_ROOT_PARTS
from compdblib.active_config import ActiveConfigurationResolver
from compdblib.build_settings import BuildSettingsLocator, BuildSettingsLookup
from compdblib.macro_evaluation import EvaluationContext, MacroEvaluationEngine
from compdblib.git_utils import find_workspace_root

logger = logging.getLogger(__name__)

__all__ = [
    "WorkspaceRootProvider",
    "StaticWorkspaceRootProvider",
    "GitWorkspaceRootProvider",
    "CompilationDatabaseLocator",
    "get_default_build_root",
]

MSG_NO_ROOT_DIRECTORY = "Unable to locate the compilation database: no workspace root directory"
MSG_NO_BUILD_CONFIG = "Build configuration '%s' was not found in %s"
MSG_NO_BUILD_ROOT = "Build configuration '%s' in %s has no buildRoot"
MSG_BUILD_ROOT_NOT_EVALUATED = "Unable to evaluate buildRoot '%s' of build configuration '%s'"
MSG_FOUND_DATABASE = "Found compilation database file: %s"
MSG_NO_DATABASE = "Compilation database file not found: %s"


class WorkspaceRootProvider:
    """Supplies the workspace root directory of the open folder."""

    def find_root_directory(self) -> Optional[str]:
        raise NotImplementedError


class StaticWorkspaceRootProvider(WorkspaceRootProvider):
    """Workspace root given up front (e.g. on the command line)."""

    def __init__(self, root_directory: Optional[str]):
        self.root_directory = root_directory

    def find_root_directory(self) -> Optional[str]:
        return self.root_directory


class GitWorkspaceRootProvider(WorkspaceRootProvider):
    """Workspace root discovered from a path inside a git checkout."""

    def __init__(self, start_path: str):
        self.start_path = start_path

    def find_root_directory(self) -> Optional[str]:
        return find_workspace_root(self.start_path)


def get_default_build_root(root_directory: str, configuration_name: str) -> str:
    """Get the conventional build directory used when there is no CMakeSettings.json.

    Args:
        root_directory: Workspace root directory
        configuration_name: Active configuration name

    Returns:
        <root>/out/build/<configuration_name>
    """
    return os.path.join(root_directory, *DEFAULT_BUILD_ROOT_PARTS, configuration_name)


class CompilationDatabaseLocator:
    """Computes the compile_commands.json path for the active build configuration."""

    def __init__(
        self,
        workspace_root_provider: WorkspaceRootProvider,
        build_config_provider: Optional[ActiveConfigurationResolver] = None,
        build_settings_locator: Optional[BuildSettingsLocator] = None,
        macro_engine: Optional[MacroEvaluationEngine] = None,
    ):
        self.workspace_root_provider = workspace_root_provider
        self.build_config_provider = build_config_provider or ActiveConfigurationResolver()
        self.build_settings_locator = build_settings_locator or BuildSettingsLocator()
        self.macro_engine = macro_engine or MacroEvaluationEngine()

    def locate(self) -> Optional[str]:
        """Locate the compilation database of the active configuration.

        Returns:
            Absolute path to an existing compile_commands.json, or None
        """
        root_directory = self.workspace_root_provider.find_root_directory()
        if not root_directory:
            logger.info(MSG_NO_ROOT_DIRECTORY)
            return None

        lookup = self.build_settings_locator.find(root_directory)
        active_configuration = self.build_config_provider.get_active_config(root_directory)

        if lookup is not None:
            build_root = self._get_configured_build_root(root_directory, active_configuration, lookup)
            if build_root is None:
                return None
        else:
            build_root = get_default_build_root(root_directory, active_configuration)

        database_path = os.path.abspath(os.path.join(build_root, COMPILE_COMMANDS_JSON))
        if not os.path.isfile(database_path):
            logger.info(MSG_NO_DATABASE, database_path)
            return None

        logger.info(MSG_FOUND_DATABASE, database_path)
        return database_path

    def _get_configured_build_root(self, root_directory: str, active_configuration: str, lookup: BuildSettingsLookup) -> Optional[str]:
        configuration = lookup.settings.find_configuration(active_configuration)
        if configuration is None:
            logger.info(MSG_NO_BUILD_CONFIG, active_configuration, CMAKE_SETTINGS_JSON)
            return None

        if not configuration.build_root:
            logger.info(MSG_NO_BUILD_ROOT, active_configuration, CMAKE_SETTINGS_JSON)
            return None

        context = EvaluationContext(
            active_configuration_name=configuration.name,
            root_directory=root_directory,
            generator=configuration.generator,
            settings_file_path=lookup.settings_file_path,
            root_descriptor_path=lookup.root_descriptor_path,
        )

        build_root = self.macro_engine.evaluate(configuration.build_root, context)
        if not build_root:
            logger.info(MSG_BUILD_ROOT_NOT_EVALUATED, configuration.build_root, active_configuration)
            return None

        # CMakeSettings.json templates are usually written with Windows separators
        if os.sep != "\\":
            build_root = build_root.replace("\\", os.sep)

        resolved = os.path.abspath(build_root)
        logger.debug("Build root for '%s': %s", active_configuration, resolved)
        return resolved
