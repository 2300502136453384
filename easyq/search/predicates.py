"""
Predicate documents.

A predicate is a JSON object naming an operation and its operand:

    {"op": "equals", "value": "c"}
    {"op": "gt", "field": "age", "value": 30}
    {"op": "and", "args": [{...}, {...}]}
    {"op": "not", "arg": {...}}

A one-line text form `"<op> <literal>"` (for example `"equals 'c'"`) is
accepted as shorthand for leaf operations.
"""

import ast
import re
from typing import Any, Callable, Dict, Optional, Tuple, Union

from ..exceptions import InvalidArgumentError

Predicate = Callable[[Any], bool]

_COMPARISONS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda item, value: item == value,
    "not_equals": lambda item, value: item != value,
    "contains": lambda item, value: value in item,
    "startswith": lambda item, value: item.startswith(value),
    "endswith": lambda item, value: item.endswith(value),
    "gt": lambda item, value: item > value,
    "ge": lambda item, value: item >= value,
    "lt": lambda item, value: item < value,
    "le": lambda item, value: item <= value,
    "in": lambda item, value: item in value,
    "length_eq": lambda item, value: len(item) == value,
    "length_gt": lambda item, value: len(item) > value,
    "length_lt": lambda item, value: len(item) < value,
}

COMPOSITE_OPS = ("and", "or", "not")
LEAF_OPS = tuple(_COMPARISONS) + ("regex",)


def parse_predicate_text(text: str) -> Dict[str, Any]:
    """Parse the `"<op> <literal>"` shorthand into a document."""
    op, _, literal = text.strip().partition(" ")
    if op not in LEAF_OPS or not literal.strip():
        raise InvalidArgumentError(f"Malformed predicate expression: {text!r}")
    try:
        value = ast.literal_eval(literal.strip())
    except (ValueError, SyntaxError) as e:
        raise InvalidArgumentError(f"Malformed predicate operand: {literal!r}") from e
    return {"op": op, "value": value}


def _select(field: Optional[str]) -> Callable[[Any], Any]:
    if field is None:
        return lambda item: item
    return lambda item: item[field]


def _compile(document: Any) -> Predicate:
    if not isinstance(document, dict):
        raise InvalidArgumentError("Predicate must be a JSON object")

    op = document.get("op")
    if op in ("and", "or"):
        args = document.get("args")
        if not isinstance(args, list) or not args:
            raise InvalidArgumentError(f"'{op}' needs a non-empty 'args' list")
        parts = [_compile(arg) for arg in args]
        if op == "and":
            return lambda item: all(p(item) for p in parts)
        return lambda item: any(p(item) for p in parts)

    if op == "not":
        if "arg" not in document:
            raise InvalidArgumentError("'not' needs an 'arg' predicate")
        inner = _compile(document["arg"])
        return lambda item: not inner(item)

    if op not in LEAF_OPS:
        raise InvalidArgumentError(f"Unknown predicate operation: {op!r}")
    if "value" not in document:
        raise InvalidArgumentError(f"'{op}' needs a 'value' operand")

    field = document.get("field")
    if field is not None and not isinstance(field, str):
        raise InvalidArgumentError("Predicate 'field' must be a string")
    select = _select(field)
    value = document["value"]

    if op == "regex":
        if not isinstance(value, str):
            raise InvalidArgumentError("'regex' needs a string pattern")
        try:
            pattern = re.compile(value)
        except re.error as e:
            raise InvalidArgumentError(f"Invalid regex pattern: {e}") from e
        return lambda item: pattern.search(select(item)) is not None

    if op in ("length_eq", "length_gt", "length_lt") and (
        isinstance(value, bool) or not isinstance(value, int)
    ):
        raise InvalidArgumentError(f"'{op}' needs an integer operand")
    if op == "in" and not isinstance(value, (list, str)):
        raise InvalidArgumentError("'in' needs a list or string operand")

    compare = _COMPARISONS[op]
    return lambda item: compare(select(item), value)


def compile_predicate(
    predicate: Union[Dict[str, Any], str, Predicate],
) -> Tuple[Predicate, Optional[Dict[str, Any]]]:
    """
    Compile a predicate into a callable.

    Args:
        predicate: A predicate document, its text shorthand, or a callable

    Returns:
        (callable, normalized document). The document is None for callables,
        which cannot be shipped to a remote backend.

    Raises:
        InvalidArgumentError: If the predicate is malformed
    """
    if isinstance(predicate, str):
        predicate = parse_predicate_text(predicate)
    if isinstance(predicate, dict):
        return _compile(predicate), predicate
    if callable(predicate):
        return predicate, None
    raise InvalidArgumentError("Predicate must be a document, an expression or a callable")
