"""Formula engine — safe arithmetic over price, volume and indicator calls.

No ``eval``: input is tokenized, parsed by recursive descent into an explicit
AST, then evaluated element-wise with numpy.

Grammar::

    expr   := term (('+' | '-') term)*
    term   := unary (('*' | '/') unary)*
    unary  := '-' unary | factor
    factor := NUMBER | IDENT | call | '(' expr ')'
    call   := FUNC '(' NUMBER ')'

    IDENT ∈ {price, volume}      FUNC ∈ {sma, ema, rsi}

Examples::

    price / sma(200)
    rsi(14) - 50
    (price - sma(50)) / sma(50) * 100
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache

import numpy as np

from datalab.indicators import compute_ema, compute_rsi, compute_sma

logger = logging.getLogger(__name__)

IDENTIFIERS = frozenset({"price", "volume"})
FUNCTIONS = {"sma": compute_sma, "ema": compute_ema, "rsi": compute_rsi}

_NUMBER_RE = re.compile(r"\d+(\.\d*)?|\.\d+")


class FormulaError(ValueError):
    """Formula failed to tokenize or parse. ``column`` is 1-based."""

    def __init__(self, message: str, column: int | None = None):
        self.column = column
        if column is not None:
            message = f"{message} at column {column}"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Token:
    kind: str   # NUMBER, IDENT, FUNC, LPAREN, RPAREN, PLUS, MINUS, MUL, DIV, EOF
    text: str
    pos: int    # 0-based offset into the source


_SINGLE = {"(": "LPAREN", ")": "RPAREN", "+": "PLUS", "-": "MINUS", "*": "MUL", "/": "DIV"}


def tokenize(source: str) -> list[Token]:
    tokens = []
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        if ch.isspace():
            i += 1
            continue
        if ch.isdigit() or ch == ".":
            j = i
            while j < n and (source[j].isdigit() or source[j] == "."):
                j += 1
            text = source[i:j]
            if not _NUMBER_RE.fullmatch(text):
                raise FormulaError(f'Invalid number "{text}"', i + 1)
            tokens.append(Token("NUMBER", text, i))
            i = j
            continue
        if ch.isalpha() or ch == "_":
            j = i
            while j < n and (source[j].isalnum() or source[j] == "_"):
                j += 1
            word = source[i:j]
            lower = word.lower()
            if lower in FUNCTIONS:
                tokens.append(Token("FUNC", lower, i))
            elif lower in IDENTIFIERS:
                tokens.append(Token("IDENT", lower, i))
            else:
                raise FormulaError(f'Unknown identifier "{word}"', i + 1)
            i = j
            continue
        kind = _SINGLE.get(ch)
        if kind is None:
            raise FormulaError(f'Unexpected character "{ch}"', i + 1)
        tokens.append(Token(kind, ch, i))
        i += 1
    tokens.append(Token("EOF", "", n))
    return tokens


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Identifier:
    name: str


@dataclass(frozen=True)
class Call:
    name: str
    period: float


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinOp:
    op: str
    left: "Node"
    right: "Node"


Node = Number | Identifier | Call | UnaryOp | BinOp


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class Parser:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def parse(self) -> Node:
        if self.peek().kind == "EOF":
            raise FormulaError("Formula is empty")
        node = self.expr()
        tok = self.peek()
        if tok.kind == "RPAREN":
            raise FormulaError("Unbalanced parentheses: unexpected ')'", tok.pos + 1)
        if tok.kind != "EOF":
            raise FormulaError(f'Unexpected "{tok.text}"', tok.pos + 1)
        return node

    def expr(self) -> Node:
        left = self.term()
        while self.peek().kind in ("PLUS", "MINUS"):
            op = self.advance().text
            left = BinOp(op, left, self.term())
        return left

    def term(self) -> Node:
        left = self.unary()
        while self.peek().kind in ("MUL", "DIV"):
            op = self.advance().text
            left = BinOp(op, left, self.unary())
        return left

    def unary(self) -> Node:
        if self.peek().kind == "MINUS":
            self.advance()
            return UnaryOp("-", self.unary())
        return self.factor()

    def factor(self) -> Node:
        tok = self.advance()
        if tok.kind == "NUMBER":
            return Number(float(tok.text))
        if tok.kind == "IDENT":
            return Identifier(tok.text)
        if tok.kind == "FUNC":
            return self._call(tok)
        if tok.kind == "LPAREN":
            node = self.expr()
            close = self.advance()
            if close.kind != "RPAREN":
                raise FormulaError(
                    f"Unbalanced parentheses: '(' at column {tok.pos + 1} is never closed",
                    close.pos + 1)
            return node
        if tok.kind == "RPAREN":
            raise FormulaError("Unbalanced parentheses: unexpected ')'", tok.pos + 1)
        if tok.kind == "EOF":
            raise FormulaError("Unexpected end of formula", tok.pos + 1)
        raise FormulaError(f'Unexpected "{tok.text}"', tok.pos + 1)

    def _call(self, func: Token) -> Call:
        usage = f"Malformed call: {func.text}() takes a single numeric period, e.g. {func.text}(14)"
        if self.advance().kind != "LPAREN":
            raise FormulaError(usage, func.pos + 1)
        arg = self.advance()
        if arg.kind != "NUMBER":
            raise FormulaError(usage, arg.pos + 1)
        period = float(arg.text)
        if round(period) < 1:
            raise FormulaError(f"Malformed call: {func.text}() period must be at least 1", arg.pos + 1)
        close = self.advance()
        if close.kind != "RPAREN":
            raise FormulaError(usage, close.pos + 1)
        return Call(func.text, period)


# ---------------------------------------------------------------------------
# Compilation cache and evaluation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CompiledFormula:
    source: str
    ast: Node

    def evaluate(self, raw) -> np.ndarray:
        """Evaluate against a :class:`~datalab.data.RawSeries`."""
        out = _eval(self.ast, raw)
        if np.ndim(out) == 0:
            return np.full(len(raw), float(out))
        return out


CACHE_SIZE = 256


@lru_cache(maxsize=CACHE_SIZE)
def compile_formula(source: str) -> CompiledFormula:
    """Parse ``source`` once; identical strings share one compiled formula.

    The least recently used entries are dropped past ``CACHE_SIZE``.
    """
    compiled = CompiledFormula(source, Parser(tokenize(source)).parse())
    logger.debug("compiled formula %r", source)
    return compiled


def clear_cache():
    """Drop compiled formulas."""
    compile_formula.cache_clear()


def validate_formula(source: str) -> str | None:
    """Return a human-readable error message, or None when the formula is valid."""
    try:
        compile_formula(source)
    except FormulaError as exc:
        return str(exc)
    return None


def evaluate_formula(source: str, raw) -> np.ndarray:
    """Evaluate ``source`` element-wise over ``raw``; raises FormulaError if invalid.

    Undefined indicator warm-up, missing volume and division by zero yield NaN.
    """
    return compile_formula(source).evaluate(raw)


def _eval(node: Node, raw):
    match node:
        case Number(value=value):
            return value
        case Identifier(name="price"):
            return np.asarray(raw.close, dtype=np.float64)
        case Identifier(name="volume"):
            return raw.volume_or_nan()
        case Call(name=name, period=period):
            n = len(raw)
            if n == 0:
                return np.empty(0)
            window = min(max(int(round(period)), 1), n)
            return FUNCTIONS[name](raw.close, window)
        case UnaryOp(operand=operand):
            return -_eval(operand, raw)
        case BinOp(op=op, left=left, right=right):
            a = _eval(left, raw)
            b = _eval(right, raw)
            with np.errstate(divide="ignore", invalid="ignore"):
                if op == "+":
                    return np.add(a, b)
                if op == "-":
                    return np.subtract(a, b)
                if op == "*":
                    return np.multiply(a, b)
                return np.where(np.asarray(b) != 0.0, np.divide(a, b), np.nan)
    raise TypeError(f"unknown formula node {node!r}")
