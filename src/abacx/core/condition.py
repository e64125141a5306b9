from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal as _Lit, Mapping, Optional, Tuple, Union

from .errors import ConfigurationError

AttrSource = _Lit["user_attr", "resource_attr"]

_SOURCES: Tuple[str, ...] = ("user_attr", "resource_attr")


class _Missing:
    """Sentinel for attributes absent from the attribute bag."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


# --------------------------------------------------------------------------- #
# AST
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class AttributeRef:
    source: AttrSource
    key: str

    def resolve(self, subject: Mapping[str, Any], resource: Mapping[str, Any]) -> Any:
        bag = subject if self.source == "user_attr" else resource
        cur: Any = bag
        for part in self.key.split("."):
            if isinstance(cur, Mapping) and part in cur:
                cur = cur[part]
            else:
                return MISSING
        return cur


@dataclass(frozen=True)
class Literal:
    value: Any

    def resolve(self, subject: Mapping[str, Any], resource: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class OperandList:
    """Right-hand side of ``in``/``not_in`` holding at least one attribute reference."""

    items: Tuple[Union[AttributeRef, Literal], ...]

    def resolve(self, subject: Mapping[str, Any], resource: Mapping[str, Any]) -> Tuple[Any, ...]:
        return tuple(item.resolve(subject, resource) for item in self.items)


Operand = Union[AttributeRef, Literal, OperandList]


@dataclass(frozen=True)
class Comparison:
    op: str
    left: Union[AttributeRef, Literal]
    right: Operand


@dataclass(frozen=True)
class Presence:
    """``exists`` / ``not_exists`` test on a single operand."""

    op: str
    operand: Union[AttributeRef, Literal]


@dataclass(frozen=True)
class AllOf:
    args: Tuple["Condition", ...]


@dataclass(frozen=True)
class AnyOf:
    args: Tuple["Condition", ...]


@dataclass(frozen=True)
class Not:
    arg: "Condition"


Condition = Union[Comparison, Presence, AllOf, AnyOf, Not]


# --------------------------------------------------------------------------- #
# Operators
# --------------------------------------------------------------------------- #


def _kind(v: Any) -> str:
    # bool before int: bool is a subclass of int
    if v is None:
        return "null"
    if isinstance(v, bool):
        return "boolean"
    if isinstance(v, (int, float)):
        return "number"
    if isinstance(v, str):
        return "string"
    if isinstance(v, (list, tuple)):
        return "array"
    if isinstance(v, Mapping):
        return "object"
    return type(v).__name__


def strict_equal(a: Any, b: Any) -> bool:
    """Type-aware equality without implicit coercion."""
    ka, kb = _kind(a), _kind(b)
    if ka != kb:
        return False
    if ka == "array":
        return len(a) == len(b) and all(strict_equal(x, y) for x, y in zip(a, b))
    if ka == "object":
        return a.keys() == b.keys() and all(strict_equal(a[k], b[k]) for k in a)
    return bool(a == b)


def _op_eq(a: Any, b: Any) -> bool:
    return strict_equal(a, b)


def _op_neq(a: Any, b: Any) -> bool:
    return not strict_equal(a, b)


def _ordered(cmp: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def op(a: Any, b: Any) -> bool:
        ka = _kind(a)
        if ka not in ("number", "string") or ka != _kind(b):
            return False
        return bool(cmp(a, b))

    return op


def _op_in(a: Any, b: Any) -> bool:
    kb = _kind(b)
    if kb == "array":
        return any(strict_equal(a, item) for item in b)
    if kb == "string" and _kind(a) == "string":
        return a in b
    return False


def _op_not_in(a: Any, b: Any) -> bool:
    kb = _kind(b)
    if kb == "array":
        return not any(strict_equal(a, item) for item in b)
    if kb == "string" and _kind(a) == "string":
        return a not in b
    return False


def _exists(v: Any) -> bool:
    return v is not MISSING and v is not None


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": _op_eq,
    "neq": _op_neq,
    "in": _op_in,
    "not_in": _op_not_in,
    "gt": _ordered(lambda a, b: a > b),
    "lt": _ordered(lambda a, b: a < b),
    "gte": _ordered(lambda a, b: a >= b),
    "lte": _ordered(lambda a, b: a <= b),
}

# unary; MISSING and null count as absent
PRESENCE_OPERATORS: Dict[str, Callable[[Any], bool]] = {
    "exists": _exists,
    "not_exists": lambda v: not _exists(v),
}

LOGICAL_OPERATORS: Tuple[str, ...] = ("and", "or", "not")

_LIST_OPERATORS = ("in", "not_in")


# --------------------------------------------------------------------------- #
# Parsing
# --------------------------------------------------------------------------- #


def _parse_attr_ref(raw: Any, where: str) -> AttributeRef:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{where}: attribute reference must be an object, got {raw!r}")
    if "type" in raw:
        source, key = raw.get("type"), raw.get("key")
    else:
        # shorthand {"user_attr": "id"}
        found = [s for s in _SOURCES if s in raw]
        if len(found) != 1 or len(raw) != 1:
            raise ConfigurationError(f"{where}: malformed attribute reference {dict(raw)!r}")
        source, key = found[0], raw[found[0]]
    if source not in _SOURCES:
        raise ConfigurationError(f"{where}: unknown attribute source {source!r}")
    if not isinstance(key, str) or not key:
        raise ConfigurationError(f"{where}: attribute key must be a non-empty string")
    return AttributeRef(source=source, key=key)  # type: ignore[arg-type]


def _is_operand(raw: Any) -> bool:
    if not isinstance(raw, Mapping):
        return False
    if raw.get("type") in _SOURCES + ("literal",):
        return True
    return len(raw) == 1 and next(iter(raw)) in _SOURCES


def _parse_typed(raw: Any, where: str) -> Union[AttributeRef, Literal]:
    """Operand written as an object: an attribute reference or ``{"type": "literal"}``."""
    if isinstance(raw, Mapping) and raw.get("type") == "literal":
        if "value" not in raw:
            raise ConfigurationError(f"{where}: literal without value")
        value = raw["value"]
        return Literal(tuple(value) if isinstance(value, list) else value)
    return _parse_attr_ref(raw, where)


def _parse_list(raw: List[Any], where: str) -> Operand:
    items = tuple(
        _parse_typed(item, f"{where}[{i}]") if _is_operand(item) else Literal(item)
        for i, item in enumerate(raw)
    )
    if all(isinstance(item, Literal) for item in items):
        return Literal(tuple(item.value for item in items))
    return OperandList(items)


def _parse_operand(raw: Any, where: str) -> Operand:
    if isinstance(raw, Mapping):
        return _parse_typed(raw, where)
    if isinstance(raw, list):
        return _parse_list(raw, where)
    return Literal(raw)


def _child(raw: Mapping[str, Any], keys: Tuple[str, str]) -> Any:
    # canonical key first, then the short alias
    return raw[keys[0]] if keys[0] in raw else raw.get(keys[1])


def _parse_node(raw: Any, path: str) -> Condition:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{path}: condition must be an object, got {type(raw).__name__}")
    op = raw.get("op")
    if op in ("and", "or"):
        children = _child(raw, ("conditions", "args"))
        if not isinstance(children, list) or not children:
            raise ConfigurationError(f"{path}: '{op}' requires a non-empty 'conditions' list")
        nodes = tuple(_parse_node(c, f"{path}.conditions[{i}]") for i, c in enumerate(children))
        return AllOf(nodes) if op == "and" else AnyOf(nodes)
    if op == "not":
        child = _child(raw, ("condition", "arg"))
        if child is None:
            raise ConfigurationError(f"{path}: 'not' requires 'condition'")
        return Not(_parse_node(child, f"{path}.condition"))
    if op in PRESENCE_OPERATORS:
        if "operand" not in raw:
            raise ConfigurationError(f"{path}: '{op}' requires 'operand'")
        return Presence(op=op, operand=_parse_typed(raw["operand"], f"{path}.operand"))
    if op not in OPERATORS:
        raise ConfigurationError(f"{path}: unknown operator {op!r}")
    if "left" not in raw or "right" not in raw:
        raise ConfigurationError(f"{path}: '{op}' requires 'left' and 'right'")
    return Comparison(
        op=op,
        left=_parse_typed(raw["left"], f"{path}.left"),
        right=_parse_operand(raw["right"], f"{path}.right"),
    )


def parse_condition(raw: Any) -> Optional[Condition]:
    """Parse a serialized condition into its AST.

    Accepts the JSON text stored in the ``policies.condition`` column, an
    already decoded mapping, an AST node (returned unchanged) or ``None``.
    Empty text and JSON ``null`` mean "no condition". Logical nodes use
    ``conditions`` / ``condition``; ``args`` / ``arg`` are read as aliases.
    """
    if raw is None or isinstance(raw, (Comparison, Presence, AllOf, AnyOf, Not)):
        return raw
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        if not text.strip():
            return None
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"condition is not valid JSON: {e}") from e
        if raw is None:
            return None
    return _parse_node(raw, "condition")


def _dump_operand(node: Union[AttributeRef, Literal]) -> Dict[str, Any]:
    if isinstance(node, AttributeRef):
        return {"type": node.source, "key": node.key}
    value = node.value
    return {"type": "literal", "value": list(value) if isinstance(value, tuple) else value}


def dump_condition(node: Optional[Condition]) -> Optional[Dict[str, Any]]:
    """Serialize an AST back to its canonical mapping form."""
    if node is None:
        return None
    if isinstance(node, AllOf):
        return {"op": "and", "conditions": [dump_condition(a) for a in node.args]}
    if isinstance(node, AnyOf):
        return {"op": "or", "conditions": [dump_condition(a) for a in node.args]}
    if isinstance(node, Not):
        return {"op": "not", "condition": dump_condition(node.arg)}
    if isinstance(node, Presence):
        return {"op": node.op, "operand": _dump_operand(node.operand)}
    right: Any
    if isinstance(node.right, OperandList):
        right = [_dump_operand(item) for item in node.right.items]
    elif node.op in _LIST_OPERATORS and isinstance(node.right, Literal) and isinstance(node.right.value, tuple):
        right = [{"type": "literal", "value": v} for v in node.right.value]
    else:
        right = _dump_operand(node.right)
    return {"op": node.op, "left": _dump_operand(node.left), "right": right}


# --------------------------------------------------------------------------- #
# Evaluation
# --------------------------------------------------------------------------- #


def _check_ref(node: Any) -> None:
    if isinstance(node, AttributeRef) and node.source not in _SOURCES:
        raise ConfigurationError(f"malformed attribute reference {node!r}")
    if not isinstance(node, (AttributeRef, Literal, OperandList)):
        raise ConfigurationError(f"malformed operand {node!r}")


def _eval(node: Condition, subject: Mapping[str, Any], resource: Mapping[str, Any]) -> bool:
    if isinstance(node, Comparison):
        fn = OPERATORS.get(node.op)
        if fn is None:
            raise ConfigurationError(f"unknown operator {node.op!r}")
        _check_ref(node.left)
        _check_ref(node.right)
        left = node.left.resolve(subject, resource)
        right = node.right.resolve(subject, resource)
        if left is MISSING or right is MISSING:
            return False
        return fn(left, right)
    if isinstance(node, Presence):
        test = PRESENCE_OPERATORS.get(node.op)
        if test is None:
            raise ConfigurationError(f"unknown operator {node.op!r}")
        _check_ref(node.operand)
        return test(node.operand.resolve(subject, resource))
    if isinstance(node, AllOf):
        return all(_eval(a, subject, resource) for a in node.args)
    if isinstance(node, AnyOf):
        return any(_eval(a, subject, resource) for a in node.args)
    if isinstance(node, Not):
        return not _eval(node.arg, subject, resource)
    raise ConfigurationError(f"unsupported condition node {node!r}")


def evaluate(
    condition: Any,
    subject: Optional[Mapping[str, Any]],
    resource: Optional[Mapping[str, Any]],
) -> bool:
    """Evaluate *condition* against the subject and resource attribute bags.

    ``None`` is a wildcard and evaluates to ``True``. Missing attributes never
    match. Raises :class:`ConfigurationError` for ill-formed conditions.
    """
    node = parse_condition(condition)
    if node is None:
        return True
    return _eval(node, subject or {}, resource or {})


__all__ = [
    "MISSING",
    "AttributeRef",
    "Literal",
    "OperandList",
    "Comparison",
    "Presence",
    "AllOf",
    "AnyOf",
    "Not",
    "Condition",
    "OPERATORS",
    "PRESENCE_OPERATORS",
    "LOGICAL_OPERATORS",
    "strict_equal",
    "parse_condition",
    "dump_condition",
    "evaluate",
]
