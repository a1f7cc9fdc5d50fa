# psscriptlint/literal.py
"""
Safe evaluation of data-file literals.

:class:`LiteralEvaluator` turns a syntax tree built from hashtables,
arrays, strings, numbers and ``$true``/``$false`` into plain immutable
Python values.  Nothing is ever executed: any other construct (a command,
a variable, an operator, an interpolated string, ...) raises
:class:`~psscriptlint.errors.UnsupportedLiteral` carrying the extent of
the offending node.

Value mapping:

    ============================  ==========================
    data-file literal             Python value
    ============================  ==========================
    ``@{ Key = ... }``            :class:`LiteralMap`
    ``'a', 'b'`` / ``@( ... )``   ``tuple``
    ``'text'`` / ``"text"``       ``str``
    ``42`` / ``1.5`` / ``0x1F``   ``int`` / ``float``
    ``$true`` / ``$false``        ``bool``
    ============================  ==========================
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

from psscriptlint.ast_nodes import (
    ArrayExpressionNode,
    ArrayLiteralNode,
    HashtableNode,
    Node,
    NumberNode,
    ParenExpressionNode,
    PipelineNode,
    ScriptBlockNode,
    StringConstantNode,
    VariableNode,
)
from psscriptlint.errors import UnsupportedLiteral

logger = logging.getLogger(__name__)

LiteralValue = Union[bool, int, float, str, Tuple[Any, ...], "LiteralMap"]


# ═══════════════════════════════════════════════════════════════════
#  PART 1: IMMUTABLE CASE-INSENSITIVE MAP
# ═══════════════════════════════════════════════════════════════════

class LiteralMap(Mapping[str, Any]):
    """
    An immutable, insertion-ordered mapping with case-insensitive keys.

    Lookups ignore case; iteration yields keys with the spelling they were
    first given.  Two maps are equal when their keys match case-insensitively
    and their values are equal.

        >>> m = LiteralMap({"Severity": ("Error",)})
        >>> m["severity"]
        ('Error',)
        >>> list(m)
        ['Severity']
    """

    __slots__ = ("_entries",)

    def __init__(self, items: Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None] = None) -> None:
        entries: Dict[str, Tuple[str, Any]] = {}
        if items is not None:
            pairs = items.items() if isinstance(items, Mapping) else items
            for key, value in pairs:
                if not isinstance(key, str):
                    raise TypeError(f"LiteralMap keys must be strings, got {type(key).__name__}")
                folded = key.lower()
                if folded in entries:
                    raise KeyError(f"duplicate key {key!r} (keys are case-insensitive)")
                entries[folded] = (key, value)
        self._entries = entries

    def __getitem__(self, key: str) -> Any:
        if not isinstance(key, str):
            raise KeyError(key)
        try:
            return self._entries[key.lower()][1]
        except KeyError:
            raise KeyError(key) from None

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._entries

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def original_key(self, key: str) -> str:
        """The spelling under which ``key`` was stored."""
        return self._entries[key.lower()][0]

    def _folded(self) -> Dict[str, Any]:
        return {folded: value for folded, (_, value) in self._entries.items()}

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LiteralMap):
            return self._folded() == other._folded()
        if isinstance(other, Mapping):
            try:
                return self._folded() == {k.lower(): v for k, v in other.items()}
            except AttributeError:
                return False
        return NotImplemented

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self) -> int:
        return hash(frozenset(self._folded().items()))

    def __repr__(self) -> str:
        inner = ", ".join(f"{k!r}: {v!r}" for k, v in self.items())
        return f"LiteralMap({{{inner}}})"

    def to_dict(self) -> Dict[str, Any]:
        """Recursive conversion to plain ``dict``/``list`` (JSON-ready)."""
        return {key: to_plain(value) for key, value in self.items()}


def to_plain(value: Any) -> Any:
    """Convert a literal value to JSON-compatible builtins."""
    if isinstance(value, LiteralMap):
        return value.to_dict()
    if isinstance(value, tuple):
        return [to_plain(v) for v in value]
    return value


# ═══════════════════════════════════════════════════════════════════
#  PART 2: EVALUATOR
# ═══════════════════════════════════════════════════════════════════

_BOOLEAN_VARIABLES = {"true": True, "false": False}


class LiteralEvaluator:
    """
    Evaluates literal syntax trees.

    ``wrap_parenthesized_scalars`` keeps the long-standing behavior where a
    scalar in parentheses, ``('Error')``, evaluates to a one-element array.
    """

    def __init__(self, wrap_parenthesized_scalars: bool = True) -> None:
        self.wrap_parenthesized_scalars = wrap_parenthesized_scalars

    def evaluate(self, node: Node) -> LiteralValue:
        """
        Evaluate ``node``.  A root script block holding a single statement
        (a whole parsed file) stands for that statement; nested ``{ ... }``
        blocks are never literals.
        """
        if isinstance(node, ScriptBlockNode) and len(node.statements) == 1:
            node = node.statements[0]
        return self._value(node)

    def _value(self, node: Optional[Node]) -> LiteralValue:
        if node is None:
            raise UnsupportedLiteral("Expected a literal value but found nothing")
        return node.accept(self)

    def generic_visit(self, node: Node) -> LiteralValue:
        raise UnsupportedLiteral(
            f"{node.label[0].upper()}{node.label[1:]} is not allowed in a "
            f"literal: '{_clip(node.extent.text)}'",
            node.extent,
            node.label,
        )

    def visit_PipelineNode(self, node: PipelineNode) -> LiteralValue:
        if len(node.elements) != 1:
            return self.generic_visit(node)
        return self._value(node.elements[0])

    # ── compound literals ───────────────────────────────────────

    def visit_HashtableNode(self, node: HashtableNode) -> LiteralMap:
        pairs = []
        seen = set()
        for key_node, value_node in node.pairs:
            if not isinstance(key_node, StringConstantNode):
                raise UnsupportedLiteral(
                    f"Hashtable key '{_clip(key_node.extent.text)}' must be a "
                    "name or a string constant",
                    key_node.extent,
                    key_node.label,
                )
            key = key_node.value
            if key.lower() in seen:
                raise UnsupportedLiteral(f"Duplicate key '{key}' in hashtable",
                                         key_node.extent, key_node.label)
            seen.add(key.lower())
            pairs.append((key, self._value(value_node)))
        return LiteralMap(pairs)

    def visit_ArrayLiteralNode(self, node: ArrayLiteralNode) -> Tuple[Any, ...]:
        return tuple(self._value(element) for element in node.elements)

    def visit_ArrayExpressionNode(self, node: ArrayExpressionNode) -> Tuple[Any, ...]:
        items = []
        for statement in node.statements:
            value = self._value(statement)
            if isinstance(value, tuple):
                items.extend(value)
            else:
                items.append(value)
        return tuple(items)

    def visit_ParenExpressionNode(self, node: ParenExpressionNode) -> LiteralValue:
        value = self._value(node.pipeline)
        if self.wrap_parenthesized_scalars and not isinstance(value, (tuple, LiteralMap)):
            return (value,)
        return value

    # ── scalars ─────────────────────────────────────────────────

    def visit_StringConstantNode(self, node: StringConstantNode) -> str:
        return node.value

    def visit_NumberNode(self, node: NumberNode) -> Union[int, float]:
        return node.value

    def visit_VariableNode(self, node: VariableNode) -> bool:
        try:
            return _BOOLEAN_VARIABLES[node.name.lower()]
        except KeyError:
            return self.generic_visit(node)


def _clip(text: str, width: int = 40) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[:width - 3] + "..."


# ═══════════════════════════════════════════════════════════════════
#  PART 3: CONVENIENCE FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def evaluate(node: Node, *, wrap_parenthesized_scalars: bool = True) -> LiteralValue:
    """Evaluate ``node``; raises :class:`UnsupportedLiteral` on non-literals."""
    return LiteralEvaluator(wrap_parenthesized_scalars).evaluate(node)


def safe_get_value(node: Node) -> Optional[LiteralValue]:
    """Like :func:`evaluate` but returns ``None`` for non-literals."""
    try:
        return evaluate(node)
    except UnsupportedLiteral as exc:
        logger.debug("Not a literal at %s: %s", exc.extent, exc.message)
        return None


def freeze(value: Any) -> LiteralValue:
    """
    Convert plain Python data to literal values.

    ``dict`` becomes :class:`LiteralMap`, ``list``/``tuple`` become tuples.
    Raises ``TypeError`` for anything that has no literal form and
    ``KeyError`` for keys that collide case-insensitively.
    """
    if isinstance(value, LiteralMap):
        return LiteralMap((k, freeze(v)) for k, v in value.items())
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Mapping):
        return LiteralMap((k, freeze(v)) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    raise TypeError(f"{type(value).__name__} has no literal form")


__all__ = [
    "LiteralMap",
    "LiteralValue",
    "LiteralEvaluator",
    "evaluate",
    "safe_get_value",
    "freeze",
    "to_plain",
]
