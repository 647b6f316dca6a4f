"""Restricted type expressions used by metadata.

Metadata spells parameter and result types as Python type expressions over a
small vocabulary: builtin scalars, ``Any``, ``None``, generic containers,
``X | Y`` unions and data contract names. Expressions are checked on the AST
and only evaluated once they pass.
"""

from __future__ import annotations

import ast
import datetime
import decimal
import uuid
from typing import Any, Collection, Mapping

BUILTIN_TYPES: dict[str, Any] = {
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
    "bytes": bytes,
    "Any": Any,
    "None": None,
    "list": list,
    "dict": dict,
    "tuple": tuple,
    "set": set,
    "frozenset": frozenset,
    "datetime": datetime.datetime,
    "date": datetime.date,
    "Decimal": decimal.Decimal,
    "UUID": uuid.UUID,
}
GENERIC_TYPES = frozenset({"list", "dict", "tuple", "set", "frozenset"})

# Import lines generated modules need for the vocabulary above.
VOCABULARY_IMPORTS = (
    "from datetime import date, datetime",
    "from decimal import Decimal",
    "from typing import Any",
    "from uuid import UUID",
)


def _parse(expr: str) -> ast.expr:
    return ast.parse(expr.strip(), mode="eval").body


def check_type_expression(expr: str, known_names: Collection[str] = ()) -> list[str]:
    """Return problems with ``expr``; an empty list means it is usable."""
    if not isinstance(expr, str) or not expr.strip():
        return [f"empty type expression {expr!r}"]
    try:
        node = _parse(expr)
    except SyntaxError as e:
        return [f"invalid type expression {expr!r}: {e.msg}"]
    errors: list[str] = []

    def visit(node: ast.expr, *, in_tuple_args: bool = False) -> None:
        if isinstance(node, ast.Name):
            if node.id not in BUILTIN_TYPES and node.id not in known_names:
                errors.append(f"unknown type {node.id!r} in {expr!r}")
        elif isinstance(node, ast.Constant):
            if node.value is not None and not (node.value is Ellipsis and in_tuple_args):
                errors.append(f"unsupported constant {node.value!r} in {expr!r}")
        elif isinstance(node, ast.Subscript):
            if not isinstance(node.value, ast.Name) or node.value.id not in GENERIC_TYPES:
                errors.append(f"only {', '.join(sorted(GENERIC_TYPES))} may be subscripted in {expr!r}")
                return
            items = node.slice.elts if isinstance(node.slice, ast.Tuple) else [node.slice]
            for item in items:
                visit(item, in_tuple_args=node.value.id == "tuple")
        elif isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            visit(node.left)
            visit(node.right)
        else:
            errors.append(f"unsupported syntax {type(node).__name__} in {expr!r}")

    visit(node)
    return errors


def canonical_type_expression(expr: str) -> str:
    """Single-line source form of a parsable expression, comments and layout dropped."""
    return ast.unparse(_parse(expr))


def referenced_names(expr: str) -> set[str]:
    """Non-builtin names an expression refers to; empty for unparsable input."""
    try:
        node = _parse(expr)
    except SyntaxError:
        return set()
    return {n.id for n in ast.walk(node) if isinstance(n, ast.Name) and n.id not in BUILTIN_TYPES}


def evaluate_type_expression(expr: str, namespace: Mapping[str, Any] | None = None) -> Any:
    """Evaluate a checked expression to a type object; raises ValueError otherwise."""
    namespace = dict(namespace or {})
    errors = check_type_expression(expr, namespace.keys())
    if errors:
        raise ValueError("; ".join(errors))
    code = compile(expr.strip(), "<type expression>", "eval")
    return eval(code, {"__builtins__": {}}, {**BUILTIN_TYPES, **namespace})
