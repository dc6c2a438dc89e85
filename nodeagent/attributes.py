# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Attribute files and the restricted language they are written in.

Attribute files mutate the node's attribute mapping. They are parsed with
``ast`` and evaluated by a small whitelist interpreter; nothing in a file
can import, call arbitrary functions, touch object attributes or loop.

Supported statements::

    port = 8080                         # set an attribute
    apache["listen"]["port"] = port     # nested set, creating mappings
    node["kernel.version"] = "6.1"      # keys that are not identifiers
    workers += 2                        # augmented assignment
    if os == "linux":                   # if / elif / else
        default("pkg", "apt")           # set only when absent
    pass

Expressions may use literals, list/tuple/dict displays, attribute
reads (``port``, ``node["key"]``), subscripts, arithmetic
(``+ - * / // %``), unary ``- + not``, ``and``/``or``, comparisons,
conditional expressions and f-strings. Callable names are limited to
``defined``, ``default`` and the builtins in ``SAFE_BUILTINS``.

Stored values must survive a JSON round trip: dict keys are strings,
floats are finite, and strings and lists stay under
``MAX_SEQUENCE_LENGTH`` items. Anything else fails the statement that
produced it.

Files are applied in the order the service lists them, so a later file
overrides an earlier one. The first failing file aborts the run.
"""

import ast
import copy
import logging
import math
from typing import Any, Callable

from nodeagent.exceptions import AttributeExecutionError
from nodeagent.node import Node
from nodeagent.rest import ConfigServiceClient

log = logging.getLogger(__name__)

NODE_NAME = "node"

SAFE_BUILTINS: dict[str, Callable[..., Any]] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "min": min,
    "max": max,
    "sorted": sorted,
}

NODE_FUNCTIONS = frozenset({"defined", "default"})

_ALLOWED_NODES: tuple[type, ...] = (
    ast.Module, ast.Assign, ast.AugAssign, ast.If, ast.Pass, ast.Expr,
    ast.Constant, ast.List, ast.Tuple, ast.Dict,
    ast.Name, ast.Subscript, ast.Load, ast.Store,
    ast.BinOp, ast.UnaryOp, ast.BoolOp, ast.Compare, ast.IfExp,
    ast.JoinedStr, ast.FormattedValue, ast.Call,
    ast.Add, ast.Sub, ast.Mult, ast.Div, ast.FloorDiv, ast.Mod,
    ast.USub, ast.UAdd, ast.Not, ast.And, ast.Or,
    ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
    ast.In, ast.NotIn, ast.Is, ast.IsNot,
)

MAX_SEQUENCE_LENGTH = 1_000_000


def _multiply(a: Any, b: Any) -> Any:
    """``a * b`` with sequence repetition capped at MAX_SEQUENCE_LENGTH."""
    for seq, count in ((a, b), (b, a)):
        if isinstance(seq, (str, list, tuple)) and isinstance(count, int):
            if len(seq) * max(count, 0) > MAX_SEQUENCE_LENGTH:
                raise ValueError(f"sequence longer than {MAX_SEQUENCE_LENGTH} items")
    return a * b


_BINOPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: lambda a, b: a + b,
    ast.Sub: lambda a, b: a - b,
    ast.Mult: _multiply,
    ast.Div: lambda a, b: a / b,
    ast.FloorDiv: lambda a, b: a // b,
    ast.Mod: lambda a, b: a % b,
}

_UNARYOPS: dict[type, Callable[[Any], Any]] = {
    ast.USub: lambda a: -a,
    ast.UAdd: lambda a: +a,
    ast.Not: lambda a: not a,
}

_CMPOPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: lambda a, b: a == b,
    ast.NotEq: lambda a, b: a != b,
    ast.Lt: lambda a, b: a < b,
    ast.LtE: lambda a, b: a <= b,
    ast.Gt: lambda a, b: a > b,
    ast.GtE: lambda a, b: a >= b,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: lambda a, b: a is b,
    ast.IsNot: lambda a, b: a is not b,
}

# Python errors an attribute file can provoke at runtime.
_RUNTIME_ERRORS = (
    TypeError, ValueError, KeyError, IndexError, ZeroDivisionError, OverflowError,
    RecursionError, MemoryError,
)


class AttributeInterpreter:
    """Evaluates one attribute file against a node."""

    def __init__(self, node: Node, label: str):
        self.node = node
        self.label = label

    def run(self, source: str) -> None:
        try:
            tree = ast.parse(source, filename=self.label, mode="exec")
            self._validate(tree)
        except SyntaxError as e:
            raise AttributeExecutionError(self.label, f"syntax error: {e.msg}", e.lineno) from e
        except (RecursionError, MemoryError, ValueError) as e:
            raise AttributeExecutionError(
                self.label, f"cannot parse: {type(e).__name__}: {e}"
            ) from e

        for stmt in tree.body:
            try:
                self._exec(stmt)
            except AttributeExecutionError:
                raise
            except _RUNTIME_ERRORS as e:
                raise AttributeExecutionError(
                    self.label, f"{type(e).__name__}: {e}", getattr(stmt, "lineno", None)
                ) from e

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _fail(self, node: ast.AST, reason: str) -> AttributeExecutionError:
        return AttributeExecutionError(self.label, reason, getattr(node, "lineno", None))

    def _validate(self, tree: ast.Module) -> None:
        """Reject every construct outside the language before running anything."""
        for node in ast.walk(tree):
            if not isinstance(node, _ALLOWED_NODES):
                raise self._fail(node, f"'{type(node).__name__}' is not allowed")
            if isinstance(node, ast.Expr) and not isinstance(node.value, ast.Call):
                raise self._fail(node, "bare expressions are not allowed")
            if isinstance(node, ast.Call):
                self._validate_call(node)
            if isinstance(node, ast.Assign):
                for target in node.targets:
                    self._validate_target(target)
            if isinstance(node, ast.AugAssign):
                self._validate_target(node.target)
            if isinstance(node, ast.Subscript) and isinstance(node.slice, ast.Slice):
                raise self._fail(node, "slices are not allowed")

    def _validate_call(self, node: ast.Call) -> None:
        if not isinstance(node.func, ast.Name):
            raise self._fail(node, "only named functions may be called")
        name = node.func.id
        if name not in NODE_FUNCTIONS and name not in SAFE_BUILTINS:
            raise self._fail(node, f"function '{name}' is not allowed")
        if node.keywords:
            raise self._fail(node, "keyword arguments are not allowed")

    def _validate_target(self, target: ast.expr) -> None:
        while isinstance(target, ast.Subscript):
            target = target.value
        if not isinstance(target, ast.Name):
            raise self._fail(target, "assignment target must be an attribute name")
        if target.id == NODE_NAME and isinstance(target.ctx, ast.Store):
            raise self._fail(target, f"'{NODE_NAME}' cannot be reassigned")

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _exec(self, stmt: ast.stmt) -> None:
        if isinstance(stmt, ast.Assign):
            value = self._eval(stmt.value)
            for target in stmt.targets:
                self._assign(target, copy.deepcopy(value))
        elif isinstance(stmt, ast.AugAssign):
            current = self._eval(stmt.target)
            value = _BINOPS[type(stmt.op)](current, self._eval(stmt.value))
            self._assign(stmt.target, value)
        elif isinstance(stmt, ast.If):
            branch = stmt.body if self._eval(stmt.test) else stmt.orelse
            for inner in branch:
                self._exec(inner)
        elif isinstance(stmt, ast.Expr):
            self._eval(stmt.value)
        elif isinstance(stmt, ast.Pass):
            pass
        else:
            raise self._fail(stmt, f"'{type(stmt).__name__}' is not allowed")

    def _check_storable(self, expr: ast.AST, value: Any) -> None:
        """Reject values the node cannot be saved with."""
        if value is None or isinstance(value, (bool, int)):
            return
        if isinstance(value, float):
            if not math.isfinite(value):
                raise self._fail(expr, f"cannot store non-finite number {value!r}")
            return
        if isinstance(value, (str, list, tuple)) and len(value) > MAX_SEQUENCE_LENGTH:
            raise self._fail(expr, f"{type(value).__name__} value is too long")
        if isinstance(value, str):
            return
        if isinstance(value, (list, tuple)):
            for item in value:
                self._check_storable(expr, item)
            return
        if isinstance(value, dict):
            for key, item in value.items():
                self._check_key(expr, key)
                self._check_storable(expr, item)
            return
        raise self._fail(expr, f"cannot store {type(value).__name__} value")

    def _check_key(self, expr: ast.AST, key: Any) -> None:
        if not isinstance(key, str):
            raise self._fail(expr, f"attribute keys must be strings, not {type(key).__name__}")

    def _assign(self, target: ast.expr, value: Any) -> None:
        self._check_storable(target, value)
        if isinstance(target, ast.Name):
            self.node[target.id] = value
        elif isinstance(target, ast.Subscript):
            container = self._container(target.value)
            key = self._eval(target.slice)
            if isinstance(container, dict):
                self._check_key(target, key)
            container[key] = value
        else:
            raise self._fail(target, "assignment target must be an attribute name")

    def _container(self, expr: ast.expr) -> Any:
        """Resolve the mapping an assignment writes into, creating levels."""
        if isinstance(expr, ast.Name):
            if expr.id == NODE_NAME:
                return self.node.attributes
            parent: Any = self.node.attributes
            key: Any = expr.id
        elif isinstance(expr, ast.Subscript):
            parent = self._container(expr.value)
            key = self._eval(expr.slice)
        else:
            raise self._fail(expr, "assignment target must be an attribute name")

        if isinstance(parent, dict):
            self._check_key(expr, key)
            if key not in parent:
                parent[key] = {}
            child = parent[key]
        else:
            child = parent[key]
        if not isinstance(child, (dict, list)):
            raise self._fail(expr, f"cannot assign into {type(child).__name__} value '{key}'")
        return child

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def _eval(self, expr: ast.expr) -> Any:
        if isinstance(expr, ast.Constant):
            return expr.value
        if isinstance(expr, ast.Name):
            if expr.id == NODE_NAME:
                return self.node.attributes
            if expr.id not in self.node:
                raise self._fail(expr, f"undefined attribute '{expr.id}'")
            return self.node[expr.id]
        if isinstance(expr, ast.Subscript):
            container = self._eval(expr.value)
            key = self._eval(expr.slice)
            try:
                return container[key]
            except (KeyError, IndexError) as e:
                raise self._fail(expr, f"missing key {key!r}") from e
        if isinstance(expr, ast.List):
            return [self._eval(e) for e in expr.elts]
        if isinstance(expr, ast.Tuple):
            return tuple(self._eval(e) for e in expr.elts)
        if isinstance(expr, ast.Dict):
            result = {}
            for k, v in zip(expr.keys, expr.values):
                if k is None:
                    raise self._fail(expr, "dict unpacking is not allowed")
                result[self._eval(k)] = self._eval(v)
            return result
        if isinstance(expr, ast.BinOp):
            return _BINOPS[type(expr.op)](self._eval(expr.left), self._eval(expr.right))
        if isinstance(expr, ast.UnaryOp):
            return _UNARYOPS[type(expr.op)](self._eval(expr.operand))
        if isinstance(expr, ast.BoolOp):
            return self._eval_boolop(expr)
        if isinstance(expr, ast.Compare):
            return self._eval_compare(expr)
        if isinstance(expr, ast.IfExp):
            return self._eval(expr.body) if self._eval(expr.test) else self._eval(expr.orelse)
        if isinstance(expr, ast.JoinedStr):
            return "".join(str(self._eval(v)) for v in expr.values)
        if isinstance(expr, ast.FormattedValue):
            return self._eval_formatted(expr)
        if isinstance(expr, ast.Call):
            return self._eval_call(expr)
        raise self._fail(expr, f"'{type(expr).__name__}' is not allowed")

    def _eval_boolop(self, expr: ast.BoolOp) -> Any:
        result: Any = None
        for value in expr.values:
            result = self._eval(value)
            if isinstance(expr.op, ast.And) and not result:
                return result
            if isinstance(expr.op, ast.Or) and result:
                return result
        return result

    def _eval_compare(self, expr: ast.Compare) -> bool:
        left = self._eval(expr.left)
        for op, comparator in zip(expr.ops, expr.comparators):
            right = self._eval(comparator)
            if not _CMPOPS[type(op)](left, right):
                return False
            left = right
        return True

    def _eval_formatted(self, expr: ast.FormattedValue) -> str:
        value = self._eval(expr.value)
        if expr.conversion == ord("r"):
            value = repr(value)
        elif expr.conversion == ord("s"):
            value = str(value)
        elif expr.conversion == ord("a"):
            value = ascii(value)
        fmt_spec = self._eval(expr.format_spec) if expr.format_spec is not None else ""
        return format(value, fmt_spec)

    def _eval_call(self, expr: ast.Call) -> Any:
        if not isinstance(expr.func, ast.Name):
            raise self._fail(expr, "only named functions may be called")
        name = expr.func.id
        args = [self._eval(arg) for arg in expr.args]

        if name == "defined":
            if len(args) != 1:
                raise self._fail(expr, "defined() takes exactly one key")
            return args[0] in self.node
        if name == "default":
            if len(args) != 2:
                raise self._fail(expr, "default() takes a key and a value")
            key, value = args
            self._check_key(expr, key)
            self._check_storable(expr, value)
            if key not in self.node:
                self.node[key] = copy.deepcopy(value)
            return self.node[key]
        return SAFE_BUILTINS[name](*args)


def apply_attribute_file(node: Node, contents: str, label: str) -> None:
    """Evaluate one attribute file against the node."""
    AttributeInterpreter(node, label).run(contents)


class AttributeApplier:
    """Fetches every attribute file and applies them in received order."""

    def __init__(self, service: ConfigServiceClient):
        self._service = service

    async def apply(self, node: Node) -> list[str]:
        """Apply all attribute files; returns the labels applied, in order."""
        files = await self._service.list_attribute_files()
        applied = []
        for af in files:
            log.debug(f"Applying attribute file {af.label}")
            apply_attribute_file(node, af.contents, af.label)
            applied.append(af.label)
        log.info(f"Applied {len(applied)} attribute files to {node.safe_id}")
        return applied
