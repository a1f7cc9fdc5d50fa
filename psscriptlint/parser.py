# psscriptlint/parser.py
"""
Parser for PowerShell data files (``*.psd1``).

The grammar covers the expression subset of PowerShell that can appear in
a data file, plus the surrounding constructs (commands, pipelines, script
blocks, operators) a careless settings file might contain.  Recognizing
those constructs lets the literal evaluator reject them with an exact
location instead of failing with a vague syntax error.

Usage::

    from psscriptlint.parser import parse_text

    result = parse_text("@{ Severity = @('Error') }", "settings.psd1")
    if result.errors:
        ...
    hashtable = result.ast.statements[0].elements[0]

The parse result is an ``(ast, tokens, errors)`` triple.  When ``errors``
is non-empty the AST is an empty script block.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, NamedTuple, Optional, Tuple, Union

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from psscriptlint.ast_nodes import (
    ArrayExpressionNode,
    ArrayLiteralNode,
    BinaryExpressionNode,
    CommandNode,
    ConvertExpressionNode,
    ExpandableStringNode,
    Extent,
    HashtableNode,
    IndexExpressionNode,
    InvokeMemberNode,
    LineIndex,
    MemberExpressionNode,
    NumberNode,
    ParenExpressionNode,
    PipelineNode,
    ScriptBlockNode,
    StringConstantNode,
    StringQuote,
    SubExpressionNode,
    Token,
    TokenKind,
    TypeLiteralNode,
    UnaryExpressionNode,
    VariableNode,
)
from psscriptlint.errors import ParserFailure

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1: GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

DATA_FILE_GRAMMAR = Grammar(r'''
    # ─────────────────────────────────────────────────────────────
    # Statement lists
    # ─────────────────────────────────────────────────────────────

    script              = blank (pipeline terminator)*
    block_body          = blank (pipeline terminator)*
    terminator          = ws (statement_separator / &closing / end_of_input) blank
    statement_separator = ~r"[;\r\n]"
    closing             = ~r"[)}]"
    end_of_input        = !~r"."s

    # ─────────────────────────────────────────────────────────────
    # Pipelines and commands
    # ─────────────────────────────────────────────────────────────

    pipeline            = pipeline_element (ws "|" blank pipeline_element)*
    pipeline_element    = expression / command

    command             = command_name (ws_required command_argument)*
    command_name        = invoked_command / bareword
    invoked_command     = invocation_operator ws command_target
    invocation_operator = ~r"&|\.(?=[ \t])"
    command_target      = bareword / primary
    command_argument    = parameter / postfix_expression / bareword
    parameter           = ~r"-[A-Za-z_?][\w-]*:?"

    # ─────────────────────────────────────────────────────────────
    # Expressions
    # ─────────────────────────────────────────────────────────────

    expression          = array_literal (ws binary_operator blank array_literal)*
    binary_operator     = ~r"-[A-Za-z]+(?![\w-])" / ".." / ~r"[+*/%-]"

    array_literal       = unary_expression (ws "," blank unary_expression)*

    unary_expression    = postfix_expression / prefixed_expression
    prefixed_expression = unary_operator ws unary_expression
    unary_operator      = ~r"-(?:not|bnot)(?![\w-])"i / "!" / "," / "-" / "+"

    postfix_expression  = primary postfix_operator*
    postfix_operator    = member_invocation / member_access / index_access
    member_invocation   = member_separator member_name "(" blank expression? blank ")"
    member_access       = member_separator member_name
    member_separator    = "::" / "."
    member_name         = ~r"[A-Za-z_]\w*"
    index_access        = "[" blank expression blank "]"

    primary             = hashtable / array_expression / sub_expression
                        / paren_expression / script_block / here_string
                        / string_literal / type_expression / number / variable

    # ─────────────────────────────────────────────────────────────
    # Compound primaries
    # ─────────────────────────────────────────────────────────────

    hashtable           = "@{" blank (hash_pair pair_terminator)* "}"
    hash_pair           = hash_key ws "=" blank pipeline
    pair_terminator     = ws (statement_separator / &"}") blank
    hash_key            = string_literal / number / bareword_key
    bareword_key        = ~r"[^\s=;{}()\[\]'\"`#,|&<>@$]+"

    array_expression    = "@(" block_body ")"
    sub_expression      = "$(" block_body ")"
    paren_expression    = "(" blank pipeline blank ")"
    script_block        = "{" block_body "}"

    type_expression     = type_literal (ws unary_expression)?
    type_literal        = ~r"\[[A-Za-z_][\w.]*(?:\[[^\]]*\])?\]"

    # ─────────────────────────────────────────────────────────────
    # Leaves
    # ─────────────────────────────────────────────────────────────

    here_string         = here_single / here_double
    here_single         = ~r"@'[ \t]*\r?\n(?:(.*?)\r?\n)?'@"s
    here_double         = ~r"@\"[ \t]*\r?\n(?:(.*?)\r?\n)?\"@"s

    string_literal      = single_quoted / double_quoted
    single_quoted       = ~r"'(?:[^']|'')*'"
    double_quoted       = ~r"\"(?:[^\"`]|`.|\"\")*\""s

    number              = ~r"-?(?:0x[0-9a-f]+|(?:\d+\.\d+|\.\d+|\d+)(?:e[+-]?\d+)?)[ld]?(?:kb|mb|gb|tb|pb)?(?!\w)"i
    variable            = ~r"\$(?:\{[^}]*\}|(?:[A-Za-z_]\w*:)?\w+|[$^?])"
    bareword            = ~r"[^\s;|(){}\[\],'\"`#=<>&@$][^\s;|(){}\[\],'\"`#=<>&]*"

    # ─────────────────────────────────────────────────────────────
    # Whitespace and comments
    # ─────────────────────────────────────────────────────────────

    ws                  = ~r"(?:[ \t\f]|`\r?\n|<#.*?#>|#[^\r\n]*)*"s
    ws_required         = ~r"(?:[ \t\f]|`\r?\n)+"
    blank               = ~r"(?:[ \t\f\r\n;]|`\r?\n|<#.*?#>|#[^\r\n]*)*"s
''')


# ═══════════════════════════════════════════════════════════════════
#  PART 2: PARSE RESULT
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SyntaxIssue:
    """One syntax error, located by extent."""
    message: str
    extent: Extent

    def __str__(self) -> str:
        return f"{self.extent}: {self.message}"


class ParseResult(NamedTuple):
    ast: ScriptBlockNode
    tokens: Tuple[Token, ...]
    errors: Tuple[SyntaxIssue, ...]

    @property
    def ok(self) -> bool:
        return not self.errors


# ═══════════════════════════════════════════════════════════════════
#  PART 3: TREE BUILDER
# ═══════════════════════════════════════════════════════════════════

_MULTIPLIERS = {
    "kb": 1024,
    "mb": 1024 ** 2,
    "gb": 1024 ** 3,
    "tb": 1024 ** 4,
    "pb": 1024 ** 5,
}

_ESCAPES = {
    "0": "\0", "a": "\a", "b": "\b", "e": "\x1b",
    "f": "\f", "n": "\n", "r": "\r", "t": "\t", "v": "\v",
}

# Characters that start an expansion after an unescaped '$'.
_EXPANSION_START = re.compile(r"[A-Za-z_{(?$^]")


def _parse_number(text: str) -> Union[int, float]:
    lowered = text.lower()
    multiplier = 1
    if lowered[-2:] in _MULTIPLIERS:
        multiplier = _MULTIPLIERS[lowered[-2:]]
        lowered = lowered[:-2]
    negative = lowered.startswith("-")
    if negative:
        lowered = lowered[1:]
    value: Union[int, float]
    if lowered.startswith("0x"):
        digits = lowered[2:].rstrip("l")
        value = int(digits, 16)
    else:
        real = lowered.endswith("d")
        if lowered[-1] in "ld":
            lowered = lowered[:-1]
        if real or "." in lowered or "e" in lowered:
            value = float(lowered)
        else:
            value = int(lowered)
    value *= multiplier
    return -value if negative else value


def _unescape(raw: str, collapse_quotes: bool = True) -> Tuple[str, bool]:
    """Process backtick escapes; also report whether ``raw`` expands variables."""
    out: List[str] = []
    expandable = False
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == "`" and i + 1 < len(raw):
            nxt = raw[i + 1]
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        if collapse_quotes and ch == '"' and raw[i + 1:i + 2] == '"':
            out.append('"')
            i += 2
            continue
        if ch == "$" and _EXPANSION_START.match(raw, i + 1):
            expandable = True
        out.append(ch)
        i += 1
    return "".join(out), expandable


class DataFileBuilder(NodeVisitor):
    """
    Visitor that transforms the Parsimonious parse tree into
    psscriptlint syntax tree nodes.
    """

    def __init__(self, text: str, file_path: str = "") -> None:
        self.text = text
        self.file_path = file_path
        self.index = LineIndex(text)
        self.tokens: List[Token] = []
        self.issues: List[SyntaxIssue] = []

    def _extent(self, node: Node) -> Extent:
        return self.index.extent(node.start, node.end, self.file_path)

    def _span(self, start: int, end: int) -> Extent:
        return self.index.extent(start, end, self.file_path)

    def _merge(self, first: Extent, last: Extent) -> Extent:
        start = self.index.offset(first.start_line, first.start_column)
        end = self.index.offset(last.end_line, last.end_column)
        return self._span(start or 0, end if end is not None else len(self.text))

    def _token(self, kind: TokenKind, node: Node) -> Extent:
        extent = self._extent(node)
        self.tokens.append(Token(kind, node.text, extent))
        return extent

    def generic_visit(self, node, visited_children):
        """Default: sequences yield their children, leaves the raw node."""
        if node.children or not node.text:
            return visited_children
        return node

    # ─────────────────────────────────────────────────────────────
    # Statement lists
    # ─────────────────────────────────────────────────────────────

    def visit_script(self, node, visited_children):
        _, items = visited_children
        return ScriptBlockNode(self._extent(node), tuple(item[0] for item in items))

    def visit_block_body(self, node, visited_children):
        _, items = visited_children
        return tuple(item[0] for item in items)

    # ─────────────────────────────────────────────────────────────
    # Pipelines and commands
    # ─────────────────────────────────────────────────────────────

    def visit_pipeline(self, node, visited_children):
        first, rest = visited_children
        elements = [first] + [item[3] for item in rest]
        return PipelineNode(self._extent(node), tuple(elements))

    def visit_pipeline_element(self, node, visited_children):
        return visited_children[0]

    def visit_command(self, node, visited_children):
        (elements, operator), arguments = visited_children
        elements = list(elements) + [item[1] for item in arguments]
        return CommandNode(self._extent(node), tuple(elements), operator)

    def visit_command_name(self, node, visited_children):
        name = visited_children[0]
        if isinstance(name, tuple):
            return name
        return ([name], "")

    def visit_invoked_command(self, node, visited_children):
        operator, _, target = visited_children
        return ([target], operator)

    def visit_invocation_operator(self, node, visited_children):
        return node.text

    def visit_command_target(self, node, visited_children):
        return visited_children[0]

    def visit_command_argument(self, node, visited_children):
        return visited_children[0]

    def visit_parameter(self, node, visited_children):
        extent = self._token(TokenKind.PARAMETER, node)
        return StringConstantNode(extent, node.text, StringQuote.BARE)

    def visit_bareword(self, node, visited_children):
        extent = self._token(TokenKind.BAREWORD, node)
        return StringConstantNode(extent, node.text, StringQuote.BARE)

    # ─────────────────────────────────────────────────────────────
    # Expressions
    # ─────────────────────────────────────────────────────────────

    def visit_expression(self, node, visited_children):
        result, rest = visited_children
        for item in rest:
            operator, right = item[1], item[3]
            result = BinaryExpressionNode(
                self._merge(result.extent, right.extent), operator, result, right,
            )
        return result

    def visit_binary_operator(self, node, visited_children):
        return node.text

    def visit_array_literal(self, node, visited_children):
        first, rest = visited_children
        if not rest:
            return first
        elements = [first] + [item[3] for item in rest]
        return ArrayLiteralNode(self._extent(node), tuple(elements))

    def visit_unary_expression(self, node, visited_children):
        return visited_children[0]

    def visit_prefixed_expression(self, node, visited_children):
        operator, _, operand = visited_children
        return UnaryExpressionNode(self._extent(node), operator, operand)

    def visit_unary_operator(self, node, visited_children):
        return node.text.lower()

    def visit_postfix_expression(self, node, visited_children):
        target, operators = visited_children
        for kind, static, member, payload, end in operators:
            extent = self._span(node.start, end)
            if kind == "invoke":
                target = InvokeMemberNode(extent, target, member, payload, static)
            elif kind == "member":
                target = MemberExpressionNode(extent, target, member, static)
            else:
                target = IndexExpressionNode(extent, target, payload)
        return target

    def visit_postfix_operator(self, node, visited_children):
        return visited_children[0]

    def visit_member_invocation(self, node, visited_children):
        separator, name, _, _, argument, _, _ = visited_children
        arguments: Tuple[Any, ...] = ()
        if argument:
            value = argument[0]
            if isinstance(value, ArrayLiteralNode):
                arguments = value.elements
            else:
                arguments = (value,)
        return ("invoke", separator == "::", name, arguments, node.end)

    def visit_member_access(self, node, visited_children):
        separator, name = visited_children
        return ("member", separator == "::", name, None, node.end)

    def visit_member_separator(self, node, visited_children):
        return node.text

    def visit_member_name(self, node, visited_children):
        return node.text

    def visit_index_access(self, node, visited_children):
        _, _, index, _, _ = visited_children
        return ("index", False, "", index, node.end)

    def visit_primary(self, node, visited_children):
        return visited_children[0]

    # ─────────────────────────────────────────────────────────────
    # Compound primaries
    # ─────────────────────────────────────────────────────────────

    def visit_hashtable(self, node, visited_children):
        _, _, items, _ = visited_children
        pairs = [item[0] for item in items]
        seen = set()
        for key, _value in pairs:
            if isinstance(key, (StringConstantNode, ExpandableStringNode)):
                normalized = key.value.lower()
            elif isinstance(key, NumberNode):
                normalized = repr(key.value)
            else:
                normalized = key.extent.text.lower()
            if normalized in seen:
                self.issues.append(SyntaxIssue(
                    f"Duplicate keys '{key.extent.text}' are not allowed in hash literals",
                    key.extent,
                ))
            seen.add(normalized)
        return HashtableNode(self._extent(node), tuple(pairs))

    def visit_hash_pair(self, node, visited_children):
        key, _, _, _, value = visited_children
        return (key, value)

    def visit_hash_key(self, node, visited_children):
        return visited_children[0]

    def visit_bareword_key(self, node, visited_children):
        extent = self._token(TokenKind.BAREWORD, node)
        return StringConstantNode(extent, node.text, StringQuote.BARE)

    def visit_array_expression(self, node, visited_children):
        _, statements, _ = visited_children
        return ArrayExpressionNode(self._extent(node), statements)

    def visit_sub_expression(self, node, visited_children):
        _, statements, _ = visited_children
        return SubExpressionNode(self._extent(node), statements)

    def visit_paren_expression(self, node, visited_children):
        _, _, pipeline, _, _ = visited_children
        return ParenExpressionNode(self._extent(node), pipeline)

    def visit_script_block(self, node, visited_children):
        _, statements, _ = visited_children
        return ScriptBlockNode(self._extent(node), statements)

    def visit_type_expression(self, node, visited_children):
        type_node, cast = visited_children
        if not cast:
            return type_node
        operand = cast[0][1]
        return ConvertExpressionNode(self._extent(node), type_node.type_name, operand)

    def visit_type_literal(self, node, visited_children):
        extent = self._token(TokenKind.TYPE, node)
        return TypeLiteralNode(extent, node.text[1:-1])

    # ─────────────────────────────────────────────────────────────
    # Leaves
    # ─────────────────────────────────────────────────────────────

    def visit_here_string(self, node, visited_children):
        return visited_children[0]

    def visit_string_literal(self, node, visited_children):
        return visited_children[0]

    def visit_here_single(self, node, visited_children):
        extent = self._token(TokenKind.STRING, node)
        return StringConstantNode(extent, node.match.group(1) or "", StringQuote.HERE_SINGLE)

    def visit_here_double(self, node, visited_children):
        extent = self._token(TokenKind.STRING, node)
        raw = node.match.group(1) or ""
        value, expandable = _unescape(raw, collapse_quotes=False)
        if expandable:
            return ExpandableStringNode(extent, raw, StringQuote.HERE_DOUBLE)
        return StringConstantNode(extent, value, StringQuote.HERE_DOUBLE)

    def visit_single_quoted(self, node, visited_children):
        extent = self._token(TokenKind.STRING, node)
        return StringConstantNode(extent, node.text[1:-1].replace("''", "'"), StringQuote.SINGLE)

    def visit_double_quoted(self, node, visited_children):
        extent = self._token(TokenKind.STRING, node)
        raw = node.text[1:-1]
        value, expandable = _unescape(raw)
        if expandable:
            return ExpandableStringNode(extent, raw, StringQuote.DOUBLE)
        return StringConstantNode(extent, value, StringQuote.DOUBLE)

    def visit_number(self, node, visited_children):
        extent = self._token(TokenKind.NUMBER, node)
        return NumberNode(extent, _parse_number(node.text))

    def visit_variable(self, node, visited_children):
        extent = self._token(TokenKind.VARIABLE, node)
        name = node.text[1:]
        if name.startswith("{"):
            name = name[1:-1]
        return VariableNode(extent, name)


# ═══════════════════════════════════════════════════════════════════
#  PART 4: PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def _syntax_issue(text: str, index: LineIndex, error: ParseError,
                  file_path: str) -> SyntaxIssue:
    pos = min(error.pos, len(text))
    snippet = text[pos:pos + 20].splitlines()[0] if pos < len(text) else ""
    if snippet:
        message = f"Unexpected token '{snippet}'"
    else:
        message = "Unexpected end of input"
    return SyntaxIssue(message, index.extent(pos, pos, file_path))


def parse_text(text: str, file_path: str = "") -> ParseResult:
    """Parse data-file source ``text``; ``file_path`` only labels extents."""
    builder = DataFileBuilder(text, file_path)
    try:
        tree = DATA_FILE_GRAMMAR.parse(text)
        ast = builder.visit(tree)
    except ParseError as exc:
        issue = _syntax_issue(text, builder.index, exc, file_path)
        logger.debug("Syntax error in %s: %s", file_path or "<text>", issue)
        return ParseResult(_empty(builder), (), (issue,))
    except VisitationError as exc:
        raise ParserFailure(f"Internal parser error: {exc}",
                            Extent(file=file_path)) from exc

    if builder.issues:
        return ParseResult(_empty(builder), tuple(builder.tokens), tuple(builder.issues))
    return ParseResult(ast, tuple(builder.tokens), ())


def parse_file(path: Union[str, Path]) -> ParseResult:
    """Read and parse a file. Unreadable files raise :class:`ParserFailure`."""
    file_path = str(path)
    try:
        text = Path(path).read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise ParserFailure(f"Cannot read '{file_path}': {exc.strerror or exc}",
                            Extent(file=file_path)) from exc
    return parse_text(text, file_path)


def parse(source: Optional[str] = None, *,
          path: Optional[Union[str, Path]] = None) -> ParseResult:
    """Parse either ``source`` text or the file at ``path``."""
    if (source is None) == (path is None):
        raise ValueError("parse() needs exactly one of 'source' or 'path'")
    if path is not None:
        return parse_file(path)
    return parse_text(source)


class DataFileParser:
    """The default parser collaborator used by the settings resolver."""

    def parse_text(self, text: str, file_path: str = "") -> ParseResult:
        return parse_text(text, file_path)

    def parse_file(self, path: Union[str, Path]) -> ParseResult:
        return parse_file(path)


def _empty(builder: DataFileBuilder) -> ScriptBlockNode:
    return ScriptBlockNode(builder._span(0, len(builder.text)), ())


__all__ = [
    "DATA_FILE_GRAMMAR",
    "DataFileBuilder",
    "DataFileParser",
    "ParseResult",
    "SyntaxIssue",
    "parse",
    "parse_file",
    "parse_text",
]
