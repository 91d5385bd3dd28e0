"""Evaluation of a single mapping transform."""

from __future__ import annotations

import ast
from typing import Any, assert_never

from simpleeval import InvalidExpression, SimpleEval

from can2vss.models import CodeTransform, DirectTransform, Transform, ValueMapTransform
from can2vss.normalize import scalar_text

_FUNCTIONS = {
    "abs": abs,
    "bool": bool,
    "float": float,
    "int": int,
    "max": max,
    "min": min,
    "round": round,
    "str": str,
}


class UnmatchedValue(Exception):
    """A value-map transform has no entry for the input; nothing is emitted."""


class TransformError(Exception):
    """A code transform failed to evaluate."""


def check_transform(transform: Transform) -> None:
    """Raise :class:`ValueError` if *transform* can never be evaluated."""
    if isinstance(transform, CodeTransform):
        try:
            ast.parse(transform.code.strip(), mode="eval")
        except SyntaxError as exc:
            raise ValueError(f"invalid expression {transform.code!r}: {exc.msg}") from exc


def make_evaluator() -> SimpleEval:
    return SimpleEval(functions=dict(_FUNCTIONS))


def apply_transform(
    transform: Transform,
    x: Any,
    deps: dict[str, Any],
    evaluator: SimpleEval,
) -> Any:
    """Apply *transform* to the source value *x* and dependency values *deps*.

    Code expressions see ``x`` and ``deps`` as names.
    """
    if isinstance(transform, DirectTransform):
        return x
    if isinstance(transform, CodeTransform):
        evaluator.names = {"x": x, "deps": deps}
        try:
            return evaluator.eval(transform.code.strip())
        except (InvalidExpression, ArithmeticError, TypeError, ValueError, KeyError, IndexError) as exc:
            raise TransformError(f"{transform.code!r}: {exc}") from exc
    if isinstance(transform, ValueMapTransform):
        key = scalar_text(x)
        if key not in transform.mapping:
            raise UnmatchedValue(key)
        return transform.mapping[key]
    assert_never(transform)
