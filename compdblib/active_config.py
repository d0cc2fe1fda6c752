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
"""Resolution of the active build configuration name.

The IDE records the configuration selected in its toolbar in
<root>/.vs/ProjectSettings.json:

    { "CurrentProjectSetting": "x64-Release" }

When the file is missing or unusable the IDE uses "x64-Debug", so do we.
"""

import os
import json
import logging
from typing import Optional

from compdblib.constants import (
    PROJECT_SETTINGS_DIR,
    PROJECT_SETTINGS_JSON,
    CURRENT_PROJECT_SETTING_KEY,
    DEFAULT_CONFIGURATION_NAME,
    is_critical_exception,
    require_argument,
)

logger = logging.getLogger(__name__)

__all__ = ["ActiveConfigurationResolver", "get_project_settings_path"]


def get_project_settings_path(root_directory: str) -> str:
    """Get the path of the IDE's ProjectSettings.json for a workspace root."""
    return os.path.join(root_directory, PROJECT_SETTINGS_DIR, PROJECT_SETTINGS_JSON)


class ActiveConfigurationResolver:
    """Reads the currently selected build configuration for a workspace."""

    def __init__(self, default_configuration: str = DEFAULT_CONFIGURATION_NAME):
        self.default_configuration = default_configuration

    def get_active_config(self, root_directory: Optional[str]) -> str:
        """Return the active configuration name for a workspace root.

        Args:
            root_directory: Workspace root directory

        Returns:
            The configuration name, or the default name if it cannot be read

        Raises:
            ArgumentError: If root_directory is None or empty
        """
        require_argument(root_directory, "root_directory")
        assert root_directory is not None  # For type checker

        settings_path = get_project_settings_path(root_directory)
        if not os.path.isfile(settings_path):
            logger.debug("No project settings file at %s, using default configuration '%s'", settings_path, self.default_configuration)
            return self.default_configuration

        name = self._read_setting(settings_path)
        if not name:
            logger.debug("No active configuration in %s, using default configuration '%s'", settings_path, self.default_configuration)
            return self.default_configuration

        logger.debug("Active configuration: %s", name)
        return name

    def _read_setting(self, settings_path: str) -> Optional[str]:
        try:
            with open(settings_path, "r", encoding="utf-8-sig") as f:
                data = json.load(f)
        except Exception as e:  # pylint: disable=broad-except
            if is_critical_exception(e):
                raise
            logger.warning("Failed to read project settings %s: %s", settings_path, e)
            return None

        if not isinstance(data, dict):
            logger.warning("Unexpected project settings format in %s: expected object, got %s", settings_path, type(data).__name__)
            return None

        value = data.get(CURRENT_PROJECT_SETTING_KEY)
        if not isinstance(value, str):
            return None
        return value
