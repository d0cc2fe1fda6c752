#!/usr/bin/env python3
"""Tests for compdblib/macro_evaluation.py"""

import logging
from typing import Any, Optional

import pytest

from compdblib.macro_evaluation import (
    EvaluationContext,
    MacroEvaluationEngine,
    MappingEnvironmentSource,
    ProcessEnvironmentSource,
    find_macro_tokens,
)
from compdblib.stable_id import stable_id_string


def make_context(**overrides: Any) -> EvaluationContext:
    """Build an EvaluationContext for a workspace at /proj."""
    values = {
        "active_configuration_name": "x64-Debug",
        "root_directory": "/proj",
        "generator": "Ninja",
        "settings_file_path": "/proj/CMakeSettings.json",
        "root_descriptor_path": "/proj/CMakeLists.txt",
    }
    values.update(overrides)
    return EvaluationContext(**values)


@pytest.fixture
def engine() -> MacroEvaluationEngine:
    """Engine with a fixed environment: USER=dev, LOCALAPPDATA=/appdata."""
    return MacroEvaluationEngine(MappingEnvironmentSource({"USER": "dev", "LOCALAPPDATA": "/appdata"}))


class TestFindMacroTokens:
    """Tests for find_macro_tokens."""

    def test_no_tokens(self) -> None:
        """Test plain text has no tokens."""
        assert find_macro_tokens("/proj/out/build") == []

    def test_builtin_and_env_tokens(self) -> None:
        """Test prefix and name are split on the first dot."""
        tokens = find_macro_tokens("${workspaceRoot}/out/${env.USER}")
        assert [(t.prefix, t.name) for t in tokens] == [("", "workspaceRoot"), ("env", "USER")]
        assert tokens[0].text == "${workspaceRoot}"
        assert tokens[0].start == 0
        assert tokens[0].end == len("${workspaceRoot}")

    def test_unclosed_token_is_literal(self) -> None:
        """Test "${" without a closing brace is not a token."""
        assert find_macro_tokens("/proj/${name") == []

    def test_empty_token_is_literal(self) -> None:
        """Test "${}" is not a token."""
        assert find_macro_tokens("a${}b") == []

    def test_nested_start_resumes_scanning(self) -> None:
        """Test a broken token does not hide a following well-formed one."""
        tokens = find_macro_tokens("${a${name}")
        assert [t.text for t in tokens] == ["${name}"]

    def test_lone_dollar(self) -> None:
        """Test a "$" that does not start a token is ignored."""
        tokens = find_macro_tokens("$HOME/${name}$")
        assert [t.name for t in tokens] == ["name"]

    def test_long_input_without_closing_brace(self) -> None:
        """Test a long run of unclosed starts is handled."""
        assert find_macro_tokens("${" * 5000) == []

    def test_body_with_spaces_and_punctuation(self) -> None:
        """Test any body without "$", "{" or "}" is a token."""
        tokens = find_macro_tokens("${foo bar}/${a-b}/${env.ProgramFiles(x86)}")
        assert [(t.prefix, t.name) for t in tokens] == [("", "foo bar"), ("", "a-b"), ("env", "ProgramFiles(x86)")]


class TestMacroEvaluationEngine:
    """Tests for MacroEvaluationEngine.evaluate."""

    def test_builtin_expansion(self, engine: MacroEvaluationEngine) -> None:
        """Test workspaceRoot and name expansion."""
        assert engine.evaluate("${workspaceRoot}/build/${name}", make_context()) == "/proj/build/x64-Debug"

    def test_env_expansion(self, engine: MacroEvaluationEngine) -> None:
        """Test env.NAME reads the environment source."""
        assert engine.evaluate("${env.LOCALAPPDATA}/CMakeBuild/${name}", make_context()) == "/appdata/CMakeBuild/x64-Debug"

    def test_env_prefix_is_case_insensitive(self, engine: MacroEvaluationEngine) -> None:
        """Test ENV. and env. are equivalent."""
        assert engine.evaluate("${ENV.USER}", make_context()) == "dev"

    def test_unresolvable_env_returns_none(self) -> None:
        """Test a missing environment variable makes the whole template unresolvable."""
        engine = MacroEvaluationEngine(MappingEnvironmentSource({}))
        assert engine.evaluate("${env.PATH}", make_context()) is None

    def test_unknown_builtin_returns_none(self, engine: MacroEvaluationEngine) -> None:
        """Test an unknown builtin name makes the template unresolvable."""
        assert engine.evaluate("${workspaceRoot}/${nope}", make_context()) is None

    def test_name_with_punctuation_returns_none(self, engine: MacroEvaluationEngine) -> None:
        """Test a token whose name matches no macro is not kept as literal text."""
        assert engine.evaluate("${a-b}/x", make_context()) is None
        assert engine.evaluate("${foo bar}", make_context()) is None

    def test_env_name_with_parentheses(self) -> None:
        """Test env names such as ProgramFiles(x86) resolve."""
        engine = MacroEvaluationEngine(MappingEnvironmentSource({"ProgramFiles(x86)": "C:\\PF86"}))
        assert engine.evaluate("${env.ProgramFiles(x86)}\\Tools", make_context()) == "C:\\PF86\\Tools"

    def test_builtins_are_case_sensitive(self, engine: MacroEvaluationEngine) -> None:
        """Test builtin macro names must match exactly."""
        assert engine.evaluate("${WorkspaceRoot}", make_context()) is None

    def test_unknown_prefix_returns_none(self, engine: MacroEvaluationEngine) -> None:
        """Test prefixes other than env are unresolvable."""
        assert engine.evaluate("${vs.USER}", make_context()) is None

    def test_none_template(self, engine: MacroEvaluationEngine) -> None:
        """Test a None template evaluates to None."""
        assert engine.evaluate(None, make_context()) is None

    def test_no_tokens_returns_template(self, engine: MacroEvaluationEngine) -> None:
        """Test templates without tokens are returned unchanged."""
        assert engine.evaluate("C:\\build\\fixed", make_context()) == "C:\\build\\fixed"

    def test_empty_template(self, engine: MacroEvaluationEngine) -> None:
        """Test an empty template evaluates to an empty string."""
        assert engine.evaluate("", make_context()) == ""

    def test_malformed_token_kept_literally(self, engine: MacroEvaluationEngine) -> None:
        """Test an unclosed token stays in the output as text."""
        assert engine.evaluate("${workspaceRoot}/${name", make_context()) == "/proj/${name"

    def test_values_are_not_expanded_again(self) -> None:
        """Test a value containing a token is inserted literally."""
        engine = MacroEvaluationEngine(MappingEnvironmentSource({"TRICK": "${name}"}))
        assert engine.evaluate("${env.TRICK}/x", make_context()) == "${name}/x"

    def test_missing_context_value_returns_none(self, engine: MacroEvaluationEngine) -> None:
        """Test builtins without a value in the context are unresolvable."""
        assert engine.evaluate("${generator}", make_context(generator=None)) is None

    def test_project_macros(self, engine: MacroEvaluationEngine) -> None:
        """Test projectFile, projectDir, projectDirName, thisFile and thisFileDir."""
        context = make_context()
        assert engine.evaluate("${projectFile}", context) == "/proj/CMakeLists.txt"
        assert engine.evaluate("${projectDir}", context) == "/proj"
        assert engine.evaluate("${projectDirName}", context) == "proj"
        assert engine.evaluate("${thisFile}", context) == "/proj/CMakeSettings.json"
        assert engine.evaluate("${thisFileDir}", context) == "/proj"
        assert engine.evaluate("${generator}", context) == "Ninja"

    def test_workspace_hash(self, engine: MacroEvaluationEngine) -> None:
        """Test workspaceHash and projectHash derive from the root CMakeLists.txt path."""
        expected = stable_id_string("/proj/CMakeLists.txt")
        assert engine.evaluate("${workspaceHash}", make_context()) == expected
        assert engine.evaluate("${projectHash}", make_context()) == expected

    def test_unresolved_token_is_logged(self, engine: MacroEvaluationEngine, caplog: Any) -> None:
        """Test the failing token is reported at info level."""
        with caplog.at_level(logging.INFO, logger="compdblib.macro_evaluation"):
            engine.evaluate("${env.MISSING}/x", make_context())
        assert "${env.MISSING}" in caplog.text

    def test_default_environment_is_process(self, monkeypatch: Any) -> None:
        """Test the engine reads os.environ when no source is given."""
        monkeypatch.setenv("COMPDB_TEST_VALUE", "from-process")
        assert MacroEvaluationEngine().evaluate("${env.COMPDB_TEST_VALUE}", make_context()) == "from-process"


class TestEnvironmentSources:
    """Tests for environment sources."""

    def test_mapping_case_sensitive_by_default(self) -> None:
        """Test the mapping source matches names exactly by default."""
        source = MappingEnvironmentSource({"Path": "x"})
        assert source.get("Path") == "x"
        assert source.get("PATH") is None

    def test_mapping_ignore_case(self) -> None:
        """Test ignore_case matches names regardless of case."""
        source = MappingEnvironmentSource({"Path": "x"}, ignore_case=True)
        assert source.get("PATH") == "x"
        assert source.get("path") == "x"

    def test_process_source(self, monkeypatch: Any) -> None:
        """Test the process source reads os.environ."""
        monkeypatch.delenv("COMPDB_TEST_UNSET", raising=False)
        assert ProcessEnvironmentSource().get("COMPDB_TEST_UNSET") is None
