# Command-line RPN calculator REPL with tokenizer, command parser, stack-machine evaluator,
# trace renderer and session loop.
#
# Expressions are written in postfix order ("3 4 +") over floating-point numbers. Lines starting
# with ':' are meta-commands:
#   :q, :quit   leave the REPL
#   :trace      replay the last successful evaluation one token at a time
#
# Every successful evaluation keeps a snapshot of the operand stack after each token, so :trace can
# show how the stack evolved and which instruction was about to run next.

from __future__ import annotations

import argparse
import logging
import math
import re
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, TextIO, Tuple, Union

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory, InMemoryHistory
from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

# --------------------------
# Exceptions
# --------------------------

class CalculatorError(Exception):
    """Base class for calculator errors."""
    pass

class InvalidInput(CalculatorError):
    """Raised when a line is neither a known command nor a tokenizable expression."""
    pass

class UnknownCommand(InvalidInput):
    """Raised when the text after the command prefix is not in the command table."""
    pass

class InvalidExpression(CalculatorError):
    """Raised when an expression cannot be tokenized or evaluated."""
    pass

class StackUnderflow(InvalidExpression):
    """Raised when an operator finds fewer than two operands on the stack."""
    pass

class NoResult(InvalidExpression):
    """Raised when the stack is empty after the last token."""
    pass

class LeftoverOperands(InvalidExpression):
    """Raised in strict mode when more than one value is left on the stack."""
    pass

# --------------------------
# Tokenizer
# --------------------------

@dataclass(frozen=True)
class Number:
    value: float

    def __str__(self) -> str:
        return format_number(self.value)


class Operator(Enum):
    """Binary arithmetic operators, keyed by their symbol."""
    ADD = '+'
    SUB = '-'
    MUL = '*'
    DIV = '/'

    def apply(self, rhs: float, lhs: float) -> float:
        """Compute ``rhs OP lhs``: rhs was pushed first, lhs is the top of the stack."""
        if self is Operator.ADD:
            return rhs + lhs
        if self is Operator.SUB:
            return rhs - lhs
        if self is Operator.MUL:
            return rhs * lhs
        return _divide(rhs, lhs)

    def __str__(self) -> str:
        return self.value


Token = Union[Number, Operator]
Expression = Tuple[Token, ...]

_OPERATORS = {op.value: op for op in Operator}

# ASCII whitespace only; other Unicode spaces stay inside a field.
_FIELD_SEPARATOR = re.compile(r"[ \t\n\r\f\v]+")


def tokenize(line: str) -> Expression:
    """Split a line on ASCII whitespace into Number and Operator tokens.

    Raises InvalidExpression for the first field that is neither a float nor an operator symbol.
    """
    tokens: List[Token] = []
    for field in _FIELD_SEPARATOR.split(line):
        if not field:
            continue
        try:
            tokens.append(Number(float(field)))
            continue
        except ValueError:
            pass
        op = _OPERATORS.get(field)
        if op is None:
            raise InvalidExpression(f"Unrecognized token: {field!r}")
        tokens.append(op)
    logger.debug("Tokenized %r into %d tokens", line, len(tokens))
    return tuple(tokens)

# --------------------------
# Command parser
# --------------------------

COMMAND_PREFIX = ':'


class Command(Enum):
    QUIT = 'quit'
    TRACE = 'trace'


_COMMANDS = {
    'q': Command.QUIT,
    'quit': Command.QUIT,
    'trace': Command.TRACE,
}


def parse_command(text: str) -> Command:
    """Match the text after the command prefix against the command table (case-sensitive)."""
    try:
        return _COMMANDS[text]
    except KeyError:
        raise UnknownCommand(f"Unknown command: {text!r}") from None


def parse_input(line: str) -> Union[Command, Expression]:
    """Parse a trimmed line as either a command or an expression.

    Both kinds of parse failure surface as InvalidInput.
    """
    if line.startswith(COMMAND_PREFIX):
        return parse_command(line[len(COMMAND_PREFIX):])
    try:
        return tokenize(line)
    except InvalidExpression as e:
        raise InvalidInput(str(e)) from e

# --------------------------
# Evaluator
# --------------------------

Snapshot = Tuple[float, ...]
TraceHistory = Tuple[Snapshot, ...]


@dataclass(frozen=True)
class Evaluation:
    """Final value of an expression plus the stack snapshot taken after each token."""
    result: float
    history: TraceHistory


def _divide(rhs: float, lhs: float) -> float:
    # Python floats raise on division by zero; follow IEEE-754 instead.
    if lhs == 0:
        if rhs == 0 or math.isnan(rhs):
            return math.nan
        return math.copysign(math.inf, rhs) * math.copysign(1.0, lhs)
    return rhs / lhs


def evaluate(tokens: Sequence[Token], strict: bool = False) -> Evaluation:
    """Run the tokens through a postfix stack machine.

    Numbers are pushed; an operator pops lhs (top) then rhs and pushes ``rhs OP lhs``. A copy of
    the stack is recorded after every token, so the history has one snapshot per token.

    The top of the stack is the result. Extra values below it are ignored unless ``strict`` is set,
    in which case they raise LeftoverOperands.
    """
    stack: List[float] = []
    history: List[Snapshot] = []
    for index, token in enumerate(tokens):
        if isinstance(token, Number):
            stack.append(token.value)
        else:
            if len(stack) < 2:
                raise StackUnderflow(f"Operator {token} at position {index} needs two operands")
            lhs = stack.pop()
            rhs = stack.pop()
            stack.append(token.apply(rhs, lhs))
        history.append(tuple(stack))
    if not stack:
        raise NoResult("Expression left no value on the stack")
    if strict and len(stack) > 1:
        raise LeftoverOperands(f"{len(stack) - 1} unused value(s) left on the stack")
    logger.debug("Evaluated %d tokens to %r", len(tokens), stack[-1])
    return Evaluation(stack[-1], tuple(history))


_MAX_PLAIN_INTEGER = 1e16


def format_number(value: float) -> str:
    """Format a float for display.

    Integral values below 1e16 print without a fractional part; every other finite value uses the
    shortest repr, so very large or very small magnitudes use exponent notation. NaN prints as 'NaN'.
    """
    if math.isnan(value):
        return 'NaN'
    if math.isinf(value):
        return 'inf' if value > 0 else '-inf'
    if value.is_integer() and abs(value) < _MAX_PLAIN_INTEGER:
        return f"{value:.0f}"
    return repr(value)

# --------------------------
# Trace renderer
# --------------------------

TRACE_HEADER = "stack | expression (<token> = next instruction)"


def _render_stack(snapshot: Snapshot) -> str:
    return '[' + ', '.join(format_number(v) for v in snapshot) + ']'


def _render_expression(tokens: Sequence[Token], ip: int) -> str:
    parts = [f"<{tok}>" if i == ip else str(tok) for i, tok in enumerate(tokens)]
    return '[' + ' '.join(parts) + ']'


def render_trace(tokens: Sequence[Token], history: Sequence[Snapshot]) -> List[str]:
    """Render a step-by-step replay of an evaluation.

    One header line, then one line per snapshot: the stack after step ``i`` and the expression with
    the token at ``i + 1`` (the next instruction) in angle brackets. The last line brackets nothing.
    Returns an empty list when there is no history.
    """
    if not history:
        return []
    stacks = [_render_stack(snapshot) for snapshot in history]
    width = max(len(s) for s in stacks)
    lines = [TRACE_HEADER]
    for i, stack in enumerate(stacks):
        lines.append(f"{stack.ljust(width)} | {_render_expression(tokens, i + 1)}")
    return lines

# --------------------------
# Configuration
# --------------------------

class ReplConfig(BaseModel):
    """Runtime options for the REPL."""
    prompt: str = '> '
    strict_stack: bool = False
    history_file: Optional[str] = None
    log_level: str = 'WARNING'

    @field_validator('log_level')
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


def parse_args(argv: Optional[Sequence[str]] = None) -> ReplConfig:
    parser = argparse.ArgumentParser(prog='rpn-calc', description="Postfix (RPN) calculator REPL")
    parser.add_argument('--prompt', default='> ', help="prompt shown before each line")
    parser.add_argument('--strict-stack', action='store_true',
                        help="reject expressions that leave more than one value on the stack")
    parser.add_argument('--history-file', default=None,
                        help="file for interactive line history (in-memory when omitted)")
    parser.add_argument('--log-level', default='WARNING', help="logging level for stderr diagnostics")
    args = parser.parse_args(argv)
    try:
        return ReplConfig(
            prompt=args.prompt,
            strict_stack=args.strict_stack,
            history_file=args.history_file,
            log_level=args.log_level,
        )
    except ValueError as e:
        parser.error(str(e))
        raise

# --------------------------
# Line sources
# --------------------------

LineSource = Callable[[], str]


def stream_reader(stdin: TextIO, stdout: TextIO, prompt: str = '> ') -> LineSource:
    """Line source over plain text streams. Raises EOFError once the input is exhausted."""
    def read_line() -> str:
        stdout.write(prompt)
        # No newline follows the prompt, so flush before blocking on input.
        stdout.flush()
        line = stdin.readline()
        if line == '':
            raise EOFError()
        return line
    return read_line


def prompt_reader(config: ReplConfig, input=None, output=None) -> LineSource:
    """Line source backed by prompt_toolkit, with line history for interactive terminals."""
    if config.history_file:
        history = FileHistory(config.history_file)
    else:
        history = InMemoryHistory()
    session = PromptSession(history=history, input=input, output=output)

    def read_line() -> str:
        return session.prompt(config.prompt)
    return read_line

# --------------------------
# Session loop
# --------------------------

INVALID_INPUT = "invalid input"
INVALID_EXPRESSION = "invalid expression"


@dataclass(frozen=True)
class SessionState:
    """Last successfully evaluated expression and its trace history."""
    expression: Expression = ()
    history: TraceHistory = ()


class Session:
    """Read-Eval-Print loop state machine: running until a quit command or end of input."""

    def __init__(self, config: Optional[ReplConfig] = None):
        self.config = config or ReplConfig()
        self.state = SessionState()
        self.running = True

    def handle_line(self, line: str) -> List[str]:
        """Process one input line and return the lines to display."""
        text = line.strip()
        try:
            parsed = parse_input(text)
        except InvalidInput as e:
            logger.debug("Rejected input %r: %s", text, e)
            return [INVALID_INPUT]

        if isinstance(parsed, Command):
            return self._run_command(parsed)

        try:
            evaluation = evaluate(parsed, strict=self.config.strict_stack)
        except InvalidExpression as e:
            logger.debug("Evaluation of %r failed: %s", text, e)
            return [INVALID_EXPRESSION]
        self.state = SessionState(parsed, evaluation.history)
        return [format_number(evaluation.result)]

    def _run_command(self, command: Command) -> List[str]:
        logger.debug("Running command %s", command.name)
        if command is Command.QUIT:
            self.running = False
            return []
        return render_trace(self.state.expression, self.state.history)

    def run(self, read_line: LineSource, write: Callable[[str], object]) -> None:
        """Read lines until quit or end of input, writing each output line."""
        logger.info("Session started")
        while self.running:
            try:
                line = read_line()
            except KeyboardInterrupt:
                write("^C\n")
                continue
            except EOFError:
                logger.info("End of input")
                break
            for out in self.handle_line(line):
                write(out + "\n")
        self.running = False
        logger.info("Session finished")

# --------------------------
# Entry point
# --------------------------

def main(argv: Optional[List[str]] = None) -> int:
    config = parse_args(argv)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    if sys.stdin.isatty():
        read_line = prompt_reader(config)
    else:
        read_line = stream_reader(sys.stdin, sys.stdout, config.prompt)
    session = Session(config)
    session.run(read_line, sys.stdout.write)
    sys.stdout.flush()
    return 0

if __name__ == '__main__':
    sys.exit(main())
