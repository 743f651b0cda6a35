"""
Restricted expression evaluation for condition, switch, loop, delay and
transform nodes.

Expressions are Python expressions parsed with ``ast`` and checked against a
whitelist before anything runs. Attribute access is rewritten so that
``input.user.name`` reads mapping keys, which lets graph authors use the
dotted style the editor shows. Graph authors are trusted; the checks keep
honest mistakes and obvious escapes out, they are not a security boundary.
"""

import ast
import logging
from collections.abc import Mapping
from typing import Any

from flowengine.errors import ExpressionError

logger = logging.getLogger(__name__)

SAFE_BUILTINS: dict[str, Any] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "enumerate": enumerate,
    "float": float,
    "int": int,
    "isinstance": isinstance,
    "len": len,
    "list": list,
    "max": max,
    "min": min,
    "range": range,
    "reversed": reversed,
    "round": round,
    "set": set,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "tuple": tuple,
    "zip": zip,
}

# JSON spellings, so expressions written against JSON payloads read naturally
CONSTANTS: dict[str, Any] = {"true": True, "false": False, "null": None}

_ALLOWED_NODES: tuple[type, ...] = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Store,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.List,
    ast.Tuple,
    ast.Dict,
    ast.Set,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.UAdd,
    ast.BinOp,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.FloorDiv,
    ast.Mod,
    ast.Pow,
    ast.Compare,
    ast.Eq,
    ast.NotEq,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
    ast.In,
    ast.NotIn,
    ast.Is,
    ast.IsNot,
    ast.IfExp,
    ast.Call,
    ast.keyword,
    ast.ListComp,
    ast.SetComp,
    ast.DictComp,
    ast.GeneratorExp,
    ast.comprehension,
    ast.JoinedStr,
    ast.FormattedValue,
)

_ATTRIBUTE_HELPER = "__flow_getattr__"

# str.format can reach attributes through replacement fields
_BLOCKED_METHODS = {"format", "format_map", "mro"}


def _get_attribute(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        if name in value:
            return value[name]
        if name in ("get", "keys", "values", "items"):
            return getattr(value, name)
        raise ExpressionError(f"Key '{name}' not found")
    if name.startswith("_") or name in _BLOCKED_METHODS:
        raise ExpressionError(f"Access to '{name}' is not allowed")
    if isinstance(value, list | tuple) and name == "length":
        return len(value)
    if isinstance(value, str | int | float | list | tuple | set):
        try:
            return getattr(value, name)
        except AttributeError:
            raise ExpressionError(
                f"'{type(value).__name__}' has no attribute '{name}'"
            ) from None
    raise ExpressionError(f"Attribute access on '{type(value).__name__}' is not allowed")


class _Validator(ast.NodeVisitor):
    def __init__(self, allowed_names: set[str]):
        self.allowed_names = allowed_names
        self.bound: set[str] = set()

    def generic_visit(self, node: ast.AST) -> None:
        if not isinstance(node, _ALLOWED_NODES):
            raise ExpressionError(f"'{type(node).__name__}' is not allowed in expressions")
        super().generic_visit(node)

    def visit_comprehension(self, node: ast.comprehension) -> None:
        for target in ast.walk(node.target):
            if isinstance(target, ast.Name):
                self.bound.add(target.id)
        self.generic_visit(node)

    def visit_ListComp(self, node: ast.AST) -> None:
        self._visit_comprehension_expr(node)

    visit_SetComp = visit_ListComp
    visit_GeneratorExp = visit_ListComp
    visit_DictComp = visit_ListComp

    def _visit_comprehension_expr(self, node: Any) -> None:
        # Bind loop targets before visiting the element expression
        for generator in node.generators:
            self.visit(generator)
        for child in ("elt", "key", "value"):
            if hasattr(node, child):
                self.visit(getattr(node, child))

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("_"):
            raise ExpressionError(f"Name '{node.id}' is not allowed")
        if isinstance(node.ctx, ast.Load) and node.id not in self.allowed_names | self.bound:
            raise ExpressionError(f"Unknown name '{node.id}'")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_"):
            raise ExpressionError(f"Access to '{node.attr}' is not allowed")
        self.generic_visit(node)


class _AttributeRewriter(ast.NodeTransformer):
    """Turn ``x.name`` into ``__flow_getattr__(x, "name")``."""

    def visit_Attribute(self, node: ast.Attribute) -> ast.AST:
        self.generic_visit(node)
        if not isinstance(node.ctx, ast.Load):
            return node
        return ast.copy_location(
            ast.Call(
                func=ast.Name(id=_ATTRIBUTE_HELPER, ctx=ast.Load()),
                args=[node.value, ast.Constant(value=node.attr)],
                keywords=[],
            ),
            node,
        )


class SafeEvaluator:
    """
    Evaluates expressions against node input and prior outputs.

    Example:
        evaluator = SafeEvaluator()
        evaluator.evaluate("input.score > 0.8", {"input": {"score": 0.9}})  # True
    """

    def __init__(self, extra_functions: dict[str, Any] | None = None):
        self._functions = {**SAFE_BUILTINS, **(extra_functions or {})}
        self._cache: dict[tuple[str, frozenset[str]], Any] = {}

    def compile(self, expression: str, names: set[str]) -> Any:
        key = (expression, frozenset(names))
        if key in self._cache:
            return self._cache[key]

        try:
            tree = ast.parse(expression.strip(), mode="eval")
        except SyntaxError as e:
            raise ExpressionError(f"Invalid expression syntax: {e.msg}", expression) from e

        allowed = names | set(self._functions) | set(CONSTANTS)
        try:
            _Validator(allowed).visit(tree)
        except ExpressionError as e:
            e.expression = expression
            raise

        tree = ast.fix_missing_locations(_AttributeRewriter().visit(tree))
        code = compile(tree, "<expression>", "eval")
        self._cache[key] = code
        return code

    def evaluate(self, expression: str, variables: Mapping[str, Any] | None = None) -> Any:
        """
        Evaluate ``expression`` with ``variables`` as the only visible names
        (plus whitelisted builtins and true/false/null).

        Raises:
            ExpressionError: rejected, unknown names, or a runtime failure
        """
        if not isinstance(expression, str) or not expression.strip():
            raise ExpressionError("Expression is empty", expression)

        scope = dict(variables or {})
        code = self.compile(expression, set(scope))

        env: dict[str, Any] = {"__builtins__": {}}
        env.update(self._functions)
        env.update(CONSTANTS)
        env[_ATTRIBUTE_HELPER] = _get_attribute
        env.update(scope)

        try:
            return eval(code, env)
        except ExpressionError as e:
            e.expression = expression
            raise
        except Exception as e:
            raise ExpressionError(
                f"Expression '{expression}' failed: {type(e).__name__}: {e}", expression
            ) from e


_default_evaluator = SafeEvaluator()


def safe_eval(expression: str, variables: Mapping[str, Any] | None = None) -> Any:
    """Evaluate with a shared default evaluator."""
    return _default_evaluator.evaluate(expression, variables)
