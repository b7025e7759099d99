"""Postfix (RPN) calculator REPL with step-by-step evaluation traces."""

from rpn_calc.main import (
    Command,
    Evaluation,
    Number,
    Operator,
    ReplConfig,
    Session,
    SessionState,
    evaluate,
    parse_input,
    render_trace,
    tokenize,
)

__all__ = [
    "Command",
    "Evaluation",
    "Number",
    "Operator",
    "ReplConfig",
    "Session",
    "SessionState",
    "evaluate",
    "parse_input",
    "render_trace",
    "tokenize",
]
