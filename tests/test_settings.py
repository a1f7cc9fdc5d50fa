# tests/test_settings.py
"""
Tests for settings discovery, file loading and key validation.
"""

import os

import pytest

from psscriptlint.diagnostics import DiagnosticSeverity
from psscriptlint.errors import (
    InvalidRuleArguments,
    InvalidValueShape,
    NoConfigurationLiteral,
    ParserFailure,
    SettingsFileNotFound,
    TypeMismatch,
    UnknownSetting,
    UnsupportedLiteral,
)
from psscriptlint.literal import LiteralMap
from psscriptlint.settings import (
    SETTINGS_FILE_NAME,
    Configuration,
    SettingsMode,
    build_configuration,
    find_settings_mode,
    get_setting_preset_file_path,
    get_setting_presets,
    load_settings_file,
    normalize_settings_mapping,
    resolve_settings,
    resolve_settings_path,
)


class TestFindSettingsMode:

    def test_mapping_is_hashtable(self):
        mode, found = find_settings_mode({"Severity": "Error"})
        assert mode is SettingsMode.HASHTABLE
        assert found == {"Severity": "Error"}

    def test_preset_name(self):
        mode, found = find_settings_mode("psgallery")
        assert mode is SettingsMode.PRESET
        assert found.endswith("PSGallery.psd1")

    def test_other_string_is_file(self):
        mode, found = find_settings_mode("./my-settings.psd1")
        assert mode is SettingsMode.FILE
        assert found == "./my-settings.psd1"

    def test_path_object_is_file(self, tmp_path):
        mode, found = find_settings_mode(tmp_path / "x.psd1")
        assert mode is SettingsMode.FILE
        assert found == str(tmp_path / "x.psd1")

    def test_auto_discovery(self, tmp_path, write_settings):
        path = write_settings("@{ Severity = 'Error' }")
        mode, found = find_settings_mode(None, tmp_path)
        assert mode is SettingsMode.AUTO
        assert found == path

    def test_auto_discovery_from_file_path(self, tmp_path, write_settings):
        write_settings("@{}")
        script = tmp_path / "script.ps1"
        script.write_text("", encoding="utf-8")
        mode, _ = find_settings_mode(None, script)
        assert mode is SettingsMode.AUTO

    def test_nothing(self, tmp_path):
        assert find_settings_mode(None, tmp_path) == (SettingsMode.NONE, None)
        assert find_settings_mode("", None) == (SettingsMode.NONE, None)

    def test_explicit_wins_over_discovery(self, tmp_path, write_settings):
        write_settings("@{}")
        mode, _ = find_settings_mode({"Severity": "Error"}, tmp_path)
        assert mode is SettingsMode.HASHTABLE

    def test_unsupported_input_type(self):
        with pytest.raises(InvalidValueShape):
            find_settings_mode(42)


class TestPresets:

    def test_presets_are_listed(self):
        presets = get_setting_presets()
        assert "PSGallery" in presets
        assert "CodeFormatting" in presets
        assert presets == sorted(presets)

    def test_preset_lookup_is_case_insensitive(self):
        assert get_setting_preset_file_path("CODEFORMATTING").endswith("CodeFormatting.psd1")
        assert get_setting_preset_file_path("NoSuchPreset") is None

    @pytest.mark.parametrize("preset", get_setting_presets())
    def test_every_preset_resolves(self, preset):
        configuration = resolve_settings(preset)
        assert configuration.mode is SettingsMode.PRESET
        assert configuration.source_path.endswith(f"{preset}.psd1")

    def test_code_formatting_rule_arguments(self):
        configuration = resolve_settings("CodeFormatting")
        arguments = configuration.arguments_for("PSPlaceOpenBrace")
        assert arguments["Enable"] is True
        assert arguments["OnSameLine"] is True


class TestHashtableResolution:

    def test_severity_and_exclude_rules(self):
        configuration = resolve_settings({"Severity": "Error", "ExcludeRules": ["RuleA", "RuleB"]})
        assert configuration.severities == ("Error",)
        assert configuration.exclude_rules == ("RuleA", "RuleB")
        assert configuration.mode is SettingsMode.HASHTABLE

    def test_allows_severity(self):
        configuration = resolve_settings({"Severity": ["error", "Information"]})
        assert configuration.allows_severity(DiagnosticSeverity.ERROR)
        assert configuration.allows_severity(DiagnosticSeverity.INFORMATION)
        assert not configuration.allows_severity(DiagnosticSeverity.WARNING)
        assert resolve_settings(None).allows_severity(DiagnosticSeverity.PARSE_ERROR)

    def test_resolution_is_idempotent(self):
        table = {"Severity": ["Error"], "Rules": {"PSRule": {"Enable": True}}}
        assert resolve_settings(table) == resolve_settings(table)

    def test_keys_are_case_insensitive(self):
        configuration = resolve_settings({"severity": "Warning", "INCLUDERULES": "PSAvoid*"})
        assert configuration.severities == ("Warning",)
        assert configuration.include_rules == ("PSAvoid*",)

    def test_duplicates_removed_in_order(self):
        configuration = resolve_settings({"ExcludeRules": ["B", "a", "b", "A"]})
        assert configuration.exclude_rules == ("B", "a")

    def test_misspelled_key(self):
        with pytest.raises(UnknownSetting) as info:
            resolve_settings({"Sevrity": ["Error"]})
        assert info.value.key == "Sevrity"
        assert "Severity" in info.value.message

    def test_boolean_flags(self):
        configuration = resolve_settings({"IncludeDefaultRules": False,
                                          "RecurseCustomRulePath": True})
        assert configuration.include_default_rules is False
        assert configuration.recurse_custom_rule_path is True

    def test_boolean_type_mismatch(self):
        with pytest.raises(TypeMismatch):
            resolve_settings({"IncludeDefaultRules": "yes"})

    def test_string_list_shape(self):
        with pytest.raises(InvalidValueShape):
            resolve_settings({"Severity": [1, 2]})
        with pytest.raises(InvalidValueShape):
            resolve_settings({"ExcludeRules": {"A": 1}})

    def test_rules_must_be_map_of_maps(self):
        with pytest.raises(InvalidRuleArguments):
            resolve_settings({"Rules": ["PSRule"]})
        with pytest.raises(InvalidRuleArguments):
            resolve_settings({"Rules": {"PSRule": True}})

    def test_custom_rule_path_disables_default_rules(self):
        configuration = resolve_settings({"CustomRulePath": "./rules"})
        assert configuration.include_default_rules is False
        configuration = resolve_settings({"CustomRulePath": "./rules",
                                          "IncludeDefaultRules": True})
        assert configuration.include_default_rules is True

    def test_empty_array_allowed(self):
        assert resolve_settings({"ExcludeRules": []}).exclude_rules == ()

    def test_case_colliding_python_keys(self):
        with pytest.raises(InvalidValueShape):
            resolve_settings({"Severity": "Error", "severity": "Warning"})

    def test_none_value(self):
        with pytest.raises(InvalidValueShape):
            resolve_settings({"Severity": None})


class TestFileResolution:

    def test_settings_file(self, write_settings):
        path = write_settings(
            "@{\n"
            "    Severity     = @('Error', 'Warning')\n"
            "    ExcludeRules = 'PSAvoidUsingWriteHost'\n"
            "    Rules        = @{ PSAvoidUsingCmdletAliases = @{ allowlist = @('cd') } }\n"
            "}\n",
            name="custom.psd1",
        )
        configuration = resolve_settings(path)
        assert configuration.mode is SettingsMode.FILE
        assert configuration.source_path == os.path.abspath(path)
        assert configuration.severities == ("Error", "Warning")
        assert configuration.exclude_rules == ("PSAvoidUsingWriteHost",)
        assert configuration.arguments_for("PSAvoidUsingCmdletAliases")["AllowList"] == ("cd",)

    def test_auto_discovered_file(self, tmp_path, write_settings):
        write_settings("@{ Severity = 'Information' }")
        configuration = resolve_settings(None, tmp_path)
        assert configuration.severities == ("Information",)
        assert configuration.mode is SettingsMode.FILE

    def test_no_settings_gives_defaults(self, tmp_path):
        configuration = resolve_settings(None, tmp_path)
        assert configuration == Configuration()
        assert configuration.include_default_rules is True

    def test_file_and_hashtable_agree(self, write_settings):
        path = write_settings("@{ Severity = 'Error'; ExcludeRules = @('RuleA', 'RuleB') }",
                              name="a.psd1")
        from_file = resolve_settings(path)
        from_table = resolve_settings({"Severity": "Error", "ExcludeRules": ["RuleA", "RuleB"]})
        assert from_file == from_table

    def test_first_hashtable_is_used(self, write_settings):
        path = write_settings("@{ Severity = 'Error' }\n@{ Severity = 'Warning' }", name="b.psd1")
        assert resolve_settings(path).severities == ("Error",)

    def test_missing_file(self, tmp_path):
        missing = str(tmp_path / "nope.psd1")
        with pytest.raises(SettingsFileNotFound) as info:
            resolve_settings(missing)
        assert info.value.file == missing

    def test_syntax_error(self, write_settings):
        path = write_settings("@{ Severity = ", name="broken.psd1")
        with pytest.raises(ParserFailure) as info:
            resolve_settings(path)
        assert str(info.value).startswith(path)

    def test_no_hashtable(self, write_settings):
        path = write_settings("'just a string'", name="c.psd1")
        with pytest.raises(NoConfigurationLiteral):
            resolve_settings(path)

    def test_unsupported_literal_has_file_and_position(self, write_settings):
        path = write_settings("@{\n    Severity = $severity\n}", name="d.psd1")
        with pytest.raises(UnsupportedLiteral) as info:
            resolve_settings(path)
        error = info.value
        assert error.file == os.path.abspath(path)
        assert error.extent.start == (2, 16)
        assert str(error).startswith(f"{os.path.abspath(path)}:2:16: error:")
        assert str(error).endswith("[PSL-1001]")

    def test_unknown_key_in_file_has_position(self, write_settings):
        path = write_settings(
            "@{\n    Severity = 'Error'\n    Sevrity = @('Error')\n}", name="e.psd1")
        with pytest.raises(UnknownSetting) as info:
            resolve_settings(path)
        error = info.value
        assert error.file == os.path.abspath(path)
        assert error.extent.start == (3, 5)
        assert str(error).startswith(f"{os.path.abspath(path)}:3:5: error:")

    def test_type_mismatch_in_file_has_position(self, write_settings):
        path = write_settings("@{\n    IncludeDefaultRules = 'yes'\n}", name="h.psd1")
        with pytest.raises(TypeMismatch) as info:
            resolve_settings(path)
        assert info.value.extent.start == (2, 27)
        assert info.value.extent.text == "'yes'"

    def test_value_shape_in_file_has_position(self, write_settings):
        path = write_settings("@{ ExcludeRules = @(1, 2) }", name="i.psd1")
        with pytest.raises(InvalidValueShape) as info:
            resolve_settings(path)
        assert info.value.extent.start == (1, 19)

    def test_rule_arguments_in_file_have_position(self, write_settings):
        path = write_settings(
            "@{\n    Rules = @{\n        PSPlaceOpenBrace = 'on'\n    }\n}", name="j.psd1")
        with pytest.raises(InvalidRuleArguments) as info:
            resolve_settings(path)
        assert info.value.extent.start == (3, 28)
        assert info.value.file == os.path.abspath(path)

    def test_hashtable_input_has_no_position(self):
        with pytest.raises(TypeMismatch) as info:
            resolve_settings({"IncludeDefaultRules": "yes"})
        assert info.value.extent is None

    def test_custom_parser_collaborator(self, write_settings):
        path = write_settings("@{ Severity = 'Error' }", name="f.psd1")
        calls = []

        class RecordingParser:
            def parse_file(self, file_path):
                from psscriptlint.parser import parse_file
                calls.append(file_path)
                return parse_file(file_path)

        resolve_settings(path, parser=RecordingParser())
        assert calls == [os.path.abspath(path)]


class TestHelpers:

    def test_resolve_settings_path_unresolvable(self):
        assert resolve_settings_path("does/not/exist.psd1") == "does/not/exist.psd1"

    def test_resolve_settings_path_glob(self, tmp_path, write_settings):
        path = write_settings("@{}", name="only.psd1")
        assert resolve_settings_path(str(tmp_path / "on*.psd1")) == os.path.abspath(path)

    def test_load_settings_file(self, write_settings):
        path = write_settings("@{ A = 1 }", name="g.psd1")
        assert load_settings_file(path) == LiteralMap({"a": 1})

    def test_normalize_rejects_objects(self):
        with pytest.raises(InvalidValueShape):
            normalize_settings_mapping({"Severity": object()})

    def test_build_configuration_is_all_or_nothing(self):
        with pytest.raises(UnknownSetting):
            build_configuration(LiteralMap({"Severity": "Error", "Bogus": 1}))

    def test_configuration_json(self):
        configuration = resolve_settings({"Severity": "Error", "Rules": {"R": {"Enable": True}}})
        data = configuration.to_dict()
        assert data["severity"] == ["Error"]
        assert data["rules"] == {"R": {"Enable": True}}
        assert data["mode"] == "hashtable"

    def test_settings_file_name(self):
        assert SETTINGS_FILE_NAME == "PSScriptAnalyzerSettings.psd1"
