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
"""Expansion of ${...} macros in CMakeSettings.json templates.

Supported token forms:
    ${name}          builtin macro (workspaceRoot, name, projectDir, ...)
    ${env.NAME}      environment variable lookup

Expansion is all-or-nothing: if any token cannot be resolved the whole template
evaluates to None. A partially expanded build root would point at the wrong
directory.

Templates come from user-editable files, so tokens are found with a single
left-to-right scan instead of a regular expression.

A token body is any non-empty run of characters other than "$", "{" and "}".
Names are not restricted further: environment variables such as
"ProgramFiles(x86)" contain characters outside [A-Za-z0-9_]. A body like
"${foo bar}" is therefore a token, and since no macro has that name it makes
the template unresolvable rather than being kept as literal text.
"""

import os
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, NamedTuple, Optional

from compdblib.stable_id import stable_id_string

logger = logging.getLogger(__name__)

__all__ = [
    "EvaluationContext",
    "EnvironmentSource",
    "ProcessEnvironmentSource",
    "MappingEnvironmentSource",
    "MacroToken",
    "MacroEvaluationEngine",
    "find_macro_tokens",
]

TOKEN_START = "${"
TOKEN_END = "}"
PREFIX_SEPARATOR = "."
ENV_PREFIX = "env"


class MacroToken(NamedTuple):
    """A ${...} token found in a template."""

    text: str
    prefix: str
    name: str
    start: int
    end: int


@dataclass(frozen=True)
class EvaluationContext:
    """Values available to builtin macros for one expansion.

    Attributes:
        active_configuration_name: Value of ${name}
        root_directory: Value of ${workspaceRoot}
        generator: Value of ${generator} (may be None)
        settings_file_path: Value of ${thisFile} (the CMakeSettings.json path)
        root_descriptor_path: Value of ${projectFile} (the root CMakeLists.txt path)
    """

    active_configuration_name: Optional[str]
    root_directory: Optional[str]
    generator: Optional[str]
    settings_file_path: Optional[str]
    root_descriptor_path: Optional[str]


class EnvironmentSource:
    """Source of values for ${env.NAME} macros."""

    def get(self, name: str) -> Optional[str]:
        raise NotImplementedError


class ProcessEnvironmentSource(EnvironmentSource):
    """Reads variables from the current process environment."""

    def get(self, name: str) -> Optional[str]:
        return os.environ.get(name)


class MappingEnvironmentSource(EnvironmentSource):
    """Reads variables from a fixed mapping, e.g. a toolchain environment snapshot.

    Lookups are case-insensitive when ignore_case is set, matching how Windows
    treats environment variable names.
    """

    def __init__(self, variables: Mapping[str, str], ignore_case: bool = False):
        self._ignore_case = ignore_case
        if ignore_case:
            self._variables: Dict[str, str] = {key.upper(): value for key, value in variables.items()}
        else:
            self._variables = dict(variables)

    def get(self, name: str) -> Optional[str]:
        key = name.upper() if self._ignore_case else name
        return self._variables.get(key)


def _directory_of(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    return os.path.dirname(path)


def _project_dir_name(context: EvaluationContext) -> Optional[str]:
    project_dir = _directory_of(context.root_descriptor_path)
    if not project_dir:
        return None
    return os.path.basename(os.path.normpath(project_dir))


def _project_hash(context: EvaluationContext) -> Optional[str]:
    if context.root_descriptor_path is None:
        return None
    return stable_id_string(context.root_descriptor_path)


# Builtin macros are case-sensitive, as in the IDE
BUILTIN_MACROS: Dict[str, Callable[[EvaluationContext], Optional[str]]] = {
    "workspaceRoot": lambda ctx: ctx.root_directory,
    "workspaceHash": _project_hash,
    "projectHash": _project_hash,
    "projectFile": lambda ctx: ctx.root_descriptor_path,
    "projectDir": lambda ctx: _directory_of(ctx.root_descriptor_path),
    "projectDirName": _project_dir_name,
    "thisFile": lambda ctx: ctx.settings_file_path,
    "thisFileDir": lambda ctx: _directory_of(ctx.settings_file_path),
    "name": lambda ctx: ctx.active_configuration_name,
    "generator": lambda ctx: ctx.generator,
}


def find_macro_tokens(template: str) -> List[MacroToken]:
    """Find all ${...} tokens in a template, left to right.

    Runs in linear time: every character is visited at most twice. A "${" that
    is not closed by "}" before another "$", "{" or "}" is treated as literal
    text and scanning resumes after the "$".
    Any other body, including one with spaces or punctuation, is a token.

    Args:
        template: Template string to scan

    Returns:
        List of MacroToken. prefix is "" for ${name}; end is exclusive.

    Example:
        >>> [(t.prefix, t.name) for t in find_macro_tokens("${workspaceRoot}/out/${env.USER}")]
        [('', 'workspaceRoot'), ('env', 'USER')]
    """
    tokens: List[MacroToken] = []
    length = len(template)
    pos = 0

    while pos < length:
        start = template.find(TOKEN_START, pos)
        if start < 0:
            break

        body_start = start + len(TOKEN_START)
        end = body_start
        while end < length and template[end] not in "${}":
            end += 1

        if end >= length or template[end] != TOKEN_END or end == body_start:
            # Not a well-formed token; the "$" is literal text
            pos = start + 1
            continue

        body = template[body_start:end]
        prefix, separator, name = body.partition(PREFIX_SEPARATOR)
        if not separator:
            prefix, name = "", body
        tokens.append(MacroToken(template[start : end + 1], prefix, name, start, end + 1))
        pos = end + 1

    return tokens


class MacroEvaluationEngine:
    """Expands ${...} macros using an evaluation context and an environment source."""

    def __init__(self, environment: Optional[EnvironmentSource] = None):
        self._environment = environment if environment is not None else ProcessEnvironmentSource()

    def evaluate(self, template: Optional[str], context: EvaluationContext) -> Optional[str]:
        """Expand all macros in a template.

        Expanded values are inserted as-is and never scanned for further tokens.

        Args:
            template: Template string such as "${workspaceRoot}/build/${name}"
            context: Values for builtin macros

        Returns:
            Expanded string, or None if any token could not be resolved
        """
        if template is None:
            return None

        parts: List[str] = []
        pos = 0
        for token in find_macro_tokens(template):
            value = self._resolve(token.prefix, token.name, context)
            if value is None:
                logger.info("Unable to evaluate macro %s in '%s'", token.text, template)
                return None
            parts.append(template[pos : token.start])
            parts.append(value)
            pos = token.end
        parts.append(template[pos:])

        result = "".join(parts)
        logger.debug("Evaluated '%s' to '%s'", template, result)
        return result

    def _resolve(self, prefix: str, name: str, context: EvaluationContext) -> Optional[str]:
        if prefix:
            if prefix.lower() != ENV_PREFIX:
                logger.debug("Unsupported macro prefix: %s", prefix)
                return None
            return self._environment.get(name)

        resolver = BUILTIN_MACROS.get(name)
        if resolver is None:
            logger.debug("Unknown builtin macro: %s", name)
            return None
        return resolver(context)
