# psscriptlint/ast_nodes.py
"""
Syntax tree for the PowerShell data-file subset.

Every node carries an :class:`Extent` so that errors raised while
evaluating settings can point back at the offending source text.

The node set is deliberately closed: it covers the literal subset the
engine evaluates (hashtables, arrays, scalars, ``$true``/``$false``)
plus just enough of the surrounding expression grammar (commands,
variables, operators, member access, ...) for the evaluator to reject
those constructs with a precise location.
"""

from __future__ import annotations

import bisect
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Iterator, List, Optional, Tuple, Union


# ── Source positions ─────────────────────────────────────────────

@dataclass(frozen=True)
class Extent:
    """A region of source text.

    Lines and columns are 1-based; ``end_column`` is exclusive, so an
    extent covering ``abc`` at the start of a line spans columns 1..4.
    """
    start_line: int = 0
    start_column: int = 0
    end_line: int = 0
    end_column: int = 0
    file: str = ""
    text: str = ""

    @property
    def start(self) -> Tuple[int, int]:
        return (self.start_line, self.start_column)

    @property
    def end(self) -> Tuple[int, int]:
        return (self.end_line, self.end_column)

    def contains(self, other: "Extent") -> bool:
        """True when ``other`` lies entirely inside this extent."""
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        if not self.file and self.start_line == 0:
            return "<unknown location>"
        parts = []
        if self.file:
            parts.append(self.file)
        if self.start_line > 0:
            parts.append(str(self.start_line))
            if self.start_column > 0:
                parts.append(str(self.start_column))
        return ":".join(parts)


def same_file(first: str, second: str) -> bool:
    """Compare two file paths; an empty path matches anything."""
    if not first or not second:
        return True
    return (os.path.normcase(os.path.abspath(first))
            == os.path.normcase(os.path.abspath(second)))


_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class LineIndex:
    """Maps character offsets of a text to (line, column) pairs and back."""

    def __init__(self, text: str) -> None:
        self.text = text
        self._starts: List[int] = [0]
        # Offset at which the content of each line ends (terminator excluded).
        self._ends: List[int] = []
        for match in _LINE_BREAK.finditer(text):
            self._ends.append(match.start())
            self._starts.append(match.end())
        self._ends.append(len(text))

    def position(self, offset: int) -> Tuple[int, int]:
        line = bisect.bisect_right(self._starts, offset) - 1
        return (line + 1, offset - self._starts[line] + 1)

    def offset(self, line: int, column: int) -> Optional[int]:
        """Offset of (line, column), or ``None`` when it is not in the text."""
        if line < 1 or line > len(self._starts) or column < 1:
            return None
        start = self._starts[line - 1]
        if start + column - 1 > self._ends[line - 1]:
            return None
        return start + column - 1

    def extent(self, start: int, end: int, file: str = "") -> Extent:
        start_line, start_column = self.position(start)
        end_line, end_column = self.position(end)
        return Extent(start_line, start_column, end_line, end_column,
                      file, self.text[start:end])


# ── Tokens ───────────────────────────────────────────────────────

class TokenKind(Enum):
    STRING = "string"
    NUMBER = "number"
    VARIABLE = "variable"
    BAREWORD = "bareword"
    PARAMETER = "parameter"
    TYPE = "type"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    extent: Extent


class StringQuote(Enum):
    BARE = "bare"
    SINGLE = "single"
    DOUBLE = "double"
    HERE_SINGLE = "here-single"
    HERE_DOUBLE = "here-double"


# ── Nodes ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Node:
    """Base class for all syntax tree nodes."""
    extent: Extent

    label: ClassVar[str] = "expression"

    def accept(self, visitor: Any) -> Any:
        method_name = f"visit_{self.__class__.__name__}"
        method = getattr(visitor, method_name, visitor.generic_visit)
        return method(self)

    def children(self) -> Iterator["Node"]:
        return iter(())

    def walk(self, into_script_blocks: bool = True) -> Iterator["Node"]:
        """Pre-order traversal starting at this node.

        With ``into_script_blocks`` false, nested ``{ ... }`` blocks are
        not entered (the node the walk starts from always is).
        """
        stack: List[Node] = [self]
        while stack:
            node = stack.pop()
            yield node
            if (node is not self and not into_script_blocks
                    and isinstance(node, ScriptBlockNode)):
                continue
            stack.extend(reversed(list(node.children())))

    def find_all(self, predicate: Callable[["Node"], bool],
                 into_script_blocks: bool = True) -> List["Node"]:
        return [n for n in self.walk(into_script_blocks) if predicate(n)]

    def find_first(self, predicate: Callable[["Node"], bool],
                   into_script_blocks: bool = True) -> Optional["Node"]:
        for node in self.walk(into_script_blocks):
            if predicate(node):
                return node
        return None


@dataclass(frozen=True)
class ScriptBlockNode(Node):
    """A statement list: the root of a file or a ``{ ... }`` block."""
    statements: Tuple[Node, ...] = ()

    label: ClassVar[str] = "script block"

    def children(self) -> Iterator[Node]:
        return iter(self.statements)


@dataclass(frozen=True)
class PipelineNode(Node):
    elements: Tuple[Node, ...] = ()

    label: ClassVar[str] = "pipeline"

    def children(self) -> Iterator[Node]:
        return iter(self.elements)


@dataclass(frozen=True)
class CommandNode(Node):
    elements: Tuple[Node, ...] = ()
    invocation_operator: str = ""

    label: ClassVar[str] = "command invocation"

    @property
    def name(self) -> str:
        if not self.elements:
            return ""
        first = self.elements[0]
        if isinstance(first, StringConstantNode):
            return first.value
        return first.extent.text

    def children(self) -> Iterator[Node]:
        return iter(self.elements)


@dataclass(frozen=True)
class HashtableNode(Node):
    pairs: Tuple[Tuple[Node, Node], ...] = ()

    label: ClassVar[str] = "hashtable"

    def children(self) -> Iterator[Node]:
        for key, value in self.pairs:
            yield key
            yield value


@dataclass(frozen=True)
class ArrayLiteralNode(Node):
    """Comma-separated elements: ``'a', 'b'``."""
    elements: Tuple[Node, ...] = ()

    label: ClassVar[str] = "array literal"

    def children(self) -> Iterator[Node]:
        return iter(self.elements)


@dataclass(frozen=True)
class ArrayExpressionNode(Node):
    """Array sub-expression: ``@( ... )``."""
    statements: Tuple[Node, ...] = ()

    label: ClassVar[str] = "array expression"

    def children(self) -> Iterator[Node]:
        return iter(self.statements)


@dataclass(frozen=True)
class SubExpressionNode(Node):
    """``$( ... )``."""
    statements: Tuple[Node, ...] = ()

    label: ClassVar[str] = "sub-expression"

    def children(self) -> Iterator[Node]:
        return iter(self.statements)


@dataclass(frozen=True)
class ParenExpressionNode(Node):
    pipeline: Optional[Node] = None

    label: ClassVar[str] = "parenthesized expression"

    def children(self) -> Iterator[Node]:
        if self.pipeline is not None:
            yield self.pipeline


@dataclass(frozen=True)
class StringConstantNode(Node):
    value: str = ""
    quote: StringQuote = StringQuote.SINGLE

    label: ClassVar[str] = "string constant"


@dataclass(frozen=True)
class ExpandableStringNode(Node):
    """A double-quoted string that references variables or sub-expressions."""
    value: str = ""
    quote: StringQuote = StringQuote.DOUBLE

    label: ClassVar[str] = "expandable string"


@dataclass(frozen=True)
class NumberNode(Node):
    value: Union[int, float] = 0

    label: ClassVar[str] = "number"


@dataclass(frozen=True)
class VariableNode(Node):
    name: str = ""

    label: ClassVar[str] = "variable reference"


@dataclass(frozen=True)
class BinaryExpressionNode(Node):
    operator: str = ""
    left: Optional[Node] = None
    right: Optional[Node] = None

    label: ClassVar[str] = "binary expression"

    def children(self) -> Iterator[Node]:
        if self.left is not None:
            yield self.left
        if self.right is not None:
            yield self.right


@dataclass(frozen=True)
class UnaryExpressionNode(Node):
    operator: str = ""
    operand: Optional[Node] = None

    label: ClassVar[str] = "unary expression"

    def children(self) -> Iterator[Node]:
        if self.operand is not None:
            yield self.operand


@dataclass(frozen=True)
class TypeLiteralNode(Node):
    type_name: str = ""

    label: ClassVar[str] = "type literal"


@dataclass(frozen=True)
class ConvertExpressionNode(Node):
    """A cast: ``[int]'5'``."""
    type_name: str = ""
    operand: Optional[Node] = None

    label: ClassVar[str] = "type conversion"

    def children(self) -> Iterator[Node]:
        if self.operand is not None:
            yield self.operand


@dataclass(frozen=True)
class MemberExpressionNode(Node):
    target: Optional[Node] = None
    member: str = ""
    static: bool = False

    label: ClassVar[str] = "member access"

    def children(self) -> Iterator[Node]:
        if self.target is not None:
            yield self.target


@dataclass(frozen=True)
class InvokeMemberNode(Node):
    target: Optional[Node] = None
    member: str = ""
    arguments: Tuple[Node, ...] = ()
    static: bool = False

    label: ClassVar[str] = "method invocation"

    def children(self) -> Iterator[Node]:
        if self.target is not None:
            yield self.target
        yield from self.arguments


@dataclass(frozen=True)
class IndexExpressionNode(Node):
    target: Optional[Node] = None
    index: Optional[Node] = None

    label: ClassVar[str] = "index expression"

    def children(self) -> Iterator[Node]:
        if self.target is not None:
            yield self.target
        if self.index is not None:
            yield self.index


__all__ = [
    "Extent",
    "LineIndex",
    "same_file",
    "Token",
    "TokenKind",
    "StringQuote",
    "Node",
    "ScriptBlockNode",
    "PipelineNode",
    "CommandNode",
    "HashtableNode",
    "ArrayLiteralNode",
    "ArrayExpressionNode",
    "SubExpressionNode",
    "ParenExpressionNode",
    "StringConstantNode",
    "ExpandableStringNode",
    "NumberNode",
    "VariableNode",
    "BinaryExpressionNode",
    "UnaryExpressionNode",
    "TypeLiteralNode",
    "ConvertExpressionNode",
    "MemberExpressionNode",
    "InvokeMemberNode",
    "IndexExpressionNode",
]
