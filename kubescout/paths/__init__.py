"""Path expressions over nested resource bodies."""

from kubescout.paths.evaluator import evaluate, first
from kubescout.paths.operators import Operator, apply_operator
from kubescout.paths.parser import ParsedPath, PathSyntaxError, parse_path

__all__ = [
    "Operator",
    "ParsedPath",
    "PathSyntaxError",
    "apply_operator",
    "evaluate",
    "first",
    "parse_path",
]
