"""
Built-in tools: echo, math and datetime.
"""

import ast
import operator
from datetime import datetime, timezone
from typing import Any, Dict, List

from ..core.errors import ToolExecutionError
from .registry import ToolRegistry

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

# Guards against huge exponentiation like 9**9**9
MAX_EXPONENT = 1000


def evaluate_expression(expression: str) -> Any:
    """
    Evaluate an arithmetic expression without eval().

    Only numbers, parentheses, unary +/- and + - * / // % ** are allowed.

    Raises:
        ToolExecutionError: If the expression is invalid
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
        return _evaluate(tree.body)
    except ToolExecutionError:
        raise
    except (SyntaxError, ValueError, ZeroDivisionError, OverflowError, TypeError) as e:
        raise ToolExecutionError(f"Invalid mathematical expression: {e}", tool_name="math")


def _evaluate(node: ast.AST) -> Any:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left, right = _evaluate(node.left), _evaluate(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ToolExecutionError("Exponent too large", tool_name="math")
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))
    raise ToolExecutionError(
        f"Invalid mathematical expression: unsupported element {type(node).__name__}",
        tool_name="math",
    )


def echo_handler(args: Dict[str, Any], context: Dict[str, Any]) -> Any:
    return args.get("text")


def math_handler(args: Dict[str, Any], context: Dict[str, Any]) -> Any:
    return evaluate_expression(args["expression"])


def datetime_handler(args: Dict[str, Any], context: Dict[str, Any]) -> Any:
    now = datetime.now(timezone.utc)
    fmt = args.get("format") or "iso"
    if fmt == "timestamp":
        return int(now.timestamp() * 1000)
    if fmt == "locale":
        return now.astimezone().strftime("%c")
    return now.isoformat()


BUILTIN_TOOLS: List[Dict[str, Any]] = [
    {
        "name": "echo",
        "description": "Echo the input text",
        "parameters": {
            "type": "object",
            "properties": {"text": {"type": "string", "description": "Text to echo"}},
            "required": ["text"],
        },
        "handler": echo_handler,
    },
    {
        "name": "math",
        "description": "Evaluate a mathematical expression",
        "parameters": {
            "type": "object",
            "properties": {
                "expression": {"type": "string", "description": "Mathematical expression to evaluate"},
            },
            "required": ["expression"],
        },
        "handler": math_handler,
    },
    {
        "name": "datetime",
        "description": "Get current date and time",
        "parameters": {
            "type": "object",
            "properties": {
                "format": {
                    "type": "string",
                    "description": "Output format (iso, locale, timestamp)",
                    "default": "iso",
                },
            },
        },
        "handler": datetime_handler,
    },
]


def register_builtin_tools(registry: ToolRegistry) -> None:
    """Register echo, math and datetime on a registry."""
    registry.register_tools(list(BUILTIN_TOOLS))
