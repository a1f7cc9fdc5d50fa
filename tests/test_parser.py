# tests/test_parser.py
"""
Tests for the data-file grammar and the syntax tree builder.
"""

import pytest

from psscriptlint.ast_nodes import (
    ArrayExpressionNode,
    ArrayLiteralNode,
    BinaryExpressionNode,
    CommandNode,
    ExpandableStringNode,
    HashtableNode,
    NumberNode,
    PipelineNode,
    ScriptBlockNode,
    StringConstantNode,
    StringQuote,
    TokenKind,
    UnaryExpressionNode,
    VariableNode,
)
from psscriptlint.errors import ParserFailure
from psscriptlint.parser import DATA_FILE_GRAMMAR, DataFileParser, parse, parse_file, parse_text


def single(text):
    """Parse ``text`` and return the only element of its only statement."""
    result = parse_text(text)
    assert result.ok, result.errors
    assert len(result.ast.statements) == 1
    pipeline = result.ast.statements[0]
    assert isinstance(pipeline, PipelineNode)
    assert len(pipeline.elements) == 1
    return pipeline.elements[0]


class TestGrammarWellFormed:

    def test_key_rules_exist(self):
        for rule in ("script", "pipeline", "hashtable", "hash_pair",
                     "array_expression", "string_literal", "number", "variable"):
            assert rule in DATA_FILE_GRAMMAR, f"Rule {rule!r} missing"

    def test_empty_input(self):
        result = parse_text("")
        assert result.ok
        assert isinstance(result.ast, ScriptBlockNode)
        assert result.ast.statements == ()

    def test_comments_only(self):
        result = parse_text("# nothing here\n<# block\ncomment #>\n")
        assert result.ok
        assert result.ast.statements == ()


class TestHashtables:

    def test_single_pair(self):
        node = single("@{ Severity = @('Error') }")
        assert isinstance(node, HashtableNode)
        key, value = node.pairs[0]
        assert key.value == "Severity"
        assert isinstance(value, PipelineNode)
        assert isinstance(value.elements[0], ArrayExpressionNode)

    def test_pairs_separated_by_newlines_and_semicolons(self):
        node = single("@{\n  A = 1\n  B = 2; C = 3\r\n}")
        assert [k.value for k, _ in node.pairs] == ["A", "B", "C"]

    def test_quoted_keys(self):
        node = single("@{ 'Include Rules' = 1; \"Other\" = 2 }")
        assert [k.value for k, _ in node.pairs] == ["Include Rules", "Other"]

    def test_empty_hashtable(self):
        node = single("@{}")
        assert isinstance(node, HashtableNode)
        assert node.pairs == ()

    def test_nested(self):
        node = single("@{ Rules = @{ PSPlaceOpenBrace = @{ Enable = $true } } }")
        inner = node.pairs[0][1].elements[0]
        assert isinstance(inner, HashtableNode)
        assert inner.pairs[0][0].value == "PSPlaceOpenBrace"

    def test_duplicate_keys_are_syntax_errors(self):
        result = parse_text("@{ A = 1; a = 2 }")
        assert not result.ok
        assert "Duplicate keys" in result.errors[0].message
        assert result.ast.statements == ()

    def test_comments_between_pairs(self):
        node = single("@{\n  # the severity\n  Severity = 'Error' # trailing\n}")
        assert node.pairs[0][0].value == "Severity"


class TestScalars:

    def test_single_quoted_doubles_quotes(self):
        node = single("'it''s'")
        assert isinstance(node, StringConstantNode)
        assert node.value == "it's"
        assert node.quote is StringQuote.SINGLE

    def test_double_quoted_escapes(self):
        node = single('"tab`there"')
        assert node.value == "tab\there"
        assert node.quote is StringQuote.DOUBLE

    def test_double_quoted_with_variable_is_expandable(self):
        node = single('"Hello $name"')
        assert isinstance(node, ExpandableStringNode)

    def test_escaped_dollar_is_not_expandable(self):
        node = single('"costs `$5"')
        assert isinstance(node, StringConstantNode)
        assert node.value == "costs $5"

    def test_here_string(self):
        node = single("@'\nline1\nline2\n'@")
        assert isinstance(node, StringConstantNode)
        assert node.value == "line1\nline2"
        assert node.quote is StringQuote.HERE_SINGLE

    @pytest.mark.parametrize("text, value", [
        ("42", 42),
        ("-3", -3),
        ("1.5", 1.5),
        ("0x1F", 31),
        ("1kb", 1024),
        ("2MB", 2 * 1024 ** 2),
        ("1e3", 1000.0),
    ])
    def test_numbers(self, text, value):
        node = single(text)
        assert isinstance(node, NumberNode)
        assert node.value == value

    def test_variables(self):
        assert single("$true").name == "true"
        assert single("$env:PATH").name == "env:PATH"
        assert single("${odd name}").name == "odd name"


class TestExpressions:

    def test_comma_array(self):
        node = single("'a', 'b', 'c'")
        assert isinstance(node, ArrayLiteralNode)
        assert [e.value for e in node.elements] == ["a", "b", "c"]

    def test_array_expression_statements(self):
        node = single("@('a'\n'b')")
        assert isinstance(node, ArrayExpressionNode)
        assert len(node.statements) == 2

    def test_binary_operator(self):
        node = single("1 + 2")
        assert isinstance(node, BinaryExpressionNode)
        assert node.operator == "+"

    def test_unary_not(self):
        node = single("-not $true")
        assert isinstance(node, UnaryExpressionNode)
        assert isinstance(node.operand, VariableNode)

    def test_command_with_parameter(self):
        node = single("Get-Item -Path 'x'")
        assert isinstance(node, CommandNode)
        assert node.name == "Get-Item"
        assert len(node.elements) == 3

    def test_pipeline_of_two(self):
        result = parse_text("'a' | Out-Null")
        assert result.ok
        assert len(result.ast.statements[0].elements) == 2


class TestExtentsAndTokens:

    def test_hashtable_extent(self):
        node = single("@{ A = 1 }")
        assert node.extent.start == (1, 1)
        assert node.extent.end == (1, 11)
        assert node.extent.text == "@{ A = 1 }"

    def test_multiline_extent(self):
        node = single("@{\n  A = 'x'\n}")
        value = node.pairs[0][1].elements[0]
        assert value.extent.start == (2, 7)
        assert value.extent.end == (2, 10)

    def test_file_path_in_extents(self):
        result = parse_text("'x'", "settings.psd1")
        assert result.ast.statements[0].extent.file == "settings.psd1"

    def test_tokens_collected(self):
        result = parse_text("@{ Severity = 'Error'; Count = 3 }")
        kinds = [t.kind for t in result.tokens]
        assert TokenKind.STRING in kinds
        assert TokenKind.NUMBER in kinds
        assert TokenKind.BAREWORD in kinds


class TestErrors:

    def test_unterminated_hashtable(self):
        result = parse_text("@{ A = ")
        assert not result.ok
        assert result.ast.statements == ()
        assert result.errors[0].extent.start_line == 1

    def test_unbalanced_closing_brace(self):
        result = parse_text("'a' }")
        assert not result.ok

    def test_parse_requires_one_source(self):
        with pytest.raises(ValueError):
            parse()
        with pytest.raises(ValueError):
            parse("'a'", path="x.psd1")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ParserFailure) as info:
            parse_file(tmp_path / "missing.psd1")
        assert str(tmp_path / "missing.psd1") in str(info.value)


class TestFiles:

    def test_parse_file_with_bom(self, tmp_path):
        path = tmp_path / "data.psd1"
        path.write_bytes("\ufeff@{ A = 1 }".encode("utf-8"))
        result = parse_file(path)
        assert result.ok
        assert result.ast.statements[0].elements[0].extent.file == str(path)

    def test_parser_object(self, tmp_path):
        path = tmp_path / "data.psd1"
        path.write_text("@{ A = 'b' }", encoding="utf-8")
        parser = DataFileParser()
        assert parser.parse_file(path).ok
        assert parser.parse_text("@{").errors
