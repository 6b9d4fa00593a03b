"""Parse and evaluate arithmetic expressions safely."""
from enum import Enum
import operator
import string
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from remote_calculator.common.errors import (
    DivisionByZeroError,
    InvalidOperatorError,
    MalformedExpressionError,
)


# Type alias for operator functions (taking two floats, returning a float)
OperatorFn = Callable[[float, float], float]


def _divide(a: float, b: float) -> float:
    if b == 0:
        raise DivisionByZeroError(f"{a} / {b}")
    return a / b


# Mapping of operator symbols to (precedence, function)
OPERATORS: Dict[str, Tuple[int, OperatorFn]] = {
    "+": (1, operator.add),
    "-": (1, operator.sub),
    "*": (2, operator.mul),
    "/": (2, _divide),
}

# Characters the tokenizer turns into operator tokens
OPERATOR_SYMBOLS: str = "+-*/"
DIGITS: str = string.digits


class TokenKind(str, Enum):
    NUMBER = "number"
    OPERATOR = "operator"
    LEFT_PAREN = "("
    RIGHT_PAREN = ")"


class Token(BaseModel):
    """A single lexical unit of an expression."""

    model_config = ConfigDict(frozen=True)

    kind: TokenKind
    value: Optional[float] = None
    symbol: Optional[str] = None


class ExpressionParser:
    """
    Parse and evaluate arithmetic expressions safely.

    Design constraints:
        - No eval(), no dynamic code execution
        - Safe, deterministic computation
        - Malformed input raises, it never reads an empty stack

    Algorithm:
        1. Tokenize character by character (numbers, operators, parentheses)
        2. Evaluate in a single left-to-right pass with two stacks,
           one for operands and one for pending operators

    Each time an operator arrives, pending operators of higher or equal
    precedence are applied first, which gives the usual precedence rules
    and left-to-right associativity without building a syntax tree.

    Examples:
        - ``2 + 3 * 4`` evaluates to 14
        - ``(2 + 3) * 4`` evaluates to 20

    Unary minus is not supported: ``-5 + 3`` is a malformed expression.
    """

    @staticmethod
    def tokenize(expr: str) -> List[Token]:
        """
        Split an arithmetic expression into tokens.

        Whitespace is optional between tokens (``3+4*2`` and ``3 + 4 * 2``
        give the same tokens). A number is a run of digits, optionally
        followed by a decimal point and more digits.

        :param str expr: Arithmetic expression as a string

        :return: List of tokens
        :rtype: List[Token]
        :raises MalformedExpressionError: If a decimal point does not follow a digit
        :raises InvalidOperatorError: If an unsupported character is found
        """
        tokens: List[Token] = []
        i = 0
        while i < len(expr):
            char = expr[i]
            if char.isspace():
                i += 1
            elif char in DIGITS:
                start = i
                while i < len(expr) and expr[i] in DIGITS:
                    i += 1
                if i < len(expr) and expr[i] == ".":
                    i += 1
                    while i < len(expr) and expr[i] in DIGITS:
                        i += 1
                tokens.append(Token(kind=TokenKind.NUMBER, value=float(expr[start:i])))
            elif char == "(":
                tokens.append(Token(kind=TokenKind.LEFT_PAREN, symbol=char))
                i += 1
            elif char == ")":
                tokens.append(Token(kind=TokenKind.RIGHT_PAREN, symbol=char))
                i += 1
            elif char in OPERATOR_SYMBOLS:
                tokens.append(Token(kind=TokenKind.OPERATOR, symbol=char))
                i += 1
            elif char == ".":
                raise MalformedExpressionError(f"decimal point without digits at position {i}")
            else:
                raise InvalidOperatorError(repr(char))
        return tokens

    @staticmethod
    def precedence(token: Token) -> int:
        """Precedence of an operator token, 0 for parentheses."""
        if token.kind is not TokenKind.OPERATOR:
            return 0
        return OPERATORS[token.symbol][0]

    @staticmethod
    def apply(symbol: str, a: float, b: float) -> float:
        """
        Apply a binary operator.

        :param str symbol: Operator symbol
        :param float a: Left operand
        :param float b: Right operand

        :return: ``a <symbol> b``
        :rtype: float
        :raises DivisionByZeroError: If dividing by zero
        :raises InvalidOperatorError: If the symbol is not a supported operator
        """
        if symbol not in OPERATORS:
            raise InvalidOperatorError(repr(symbol))
        return OPERATORS[symbol][1](a, b)

    @staticmethod
    def _reduce(operands: List[float], operators: List[Token]) -> None:
        """
        Pop one operator and its two operands, push the result.

        :param List[float] operands: Operand stack
        :param List[Token] operators: Operator stack
        :raises MalformedExpressionError: If a stack runs empty or a parenthesis is left open
        """
        if not operators:
            raise MalformedExpressionError("missing operator")
        token = operators.pop()
        if token.kind is not TokenKind.OPERATOR:
            raise MalformedExpressionError("unbalanced parentheses")
        if len(operands) < 2:
            raise MalformedExpressionError(f"not enough operands for {token.symbol!r}")
        b: float = operands.pop()
        a: float = operands.pop()
        operands.append(ExpressionParser.apply(token.symbol, a, b))

    @staticmethod
    def evaluate(expr: str) -> float:
        """
        Evaluate an arithmetic expression safely.

        :param str expr: Arithmetic expression string

        :return: Computed result as float
        :rtype: float
        :raises DivisionByZeroError: If the expression divides by zero
        :raises InvalidOperatorError: If the expression contains an unsupported operator
        :raises MalformedExpressionError: If the expression is empty or structurally invalid
        """
        operands: List[float] = []
        operators: List[Token] = []
        # Operands and binary operators must alternate
        expect_operand = True

        for token in ExpressionParser.tokenize(expr):
            if expect_operand != (token.kind in (TokenKind.NUMBER, TokenKind.LEFT_PAREN)):
                raise MalformedExpressionError(f"unexpected {token.kind.value} in {expr!r}")

            if token.kind is TokenKind.NUMBER:
                operands.append(token.value)
                expect_operand = False
            elif token.kind is TokenKind.LEFT_PAREN:
                operators.append(token)
            elif token.kind is TokenKind.RIGHT_PAREN:
                # Apply everything back to the matching "("
                while operators and operators[-1].kind is not TokenKind.LEFT_PAREN:
                    ExpressionParser._reduce(operands, operators)
                if not operators:
                    raise MalformedExpressionError("unbalanced parentheses")
                operators.pop()
            else:
                prec = ExpressionParser.precedence(token)
                while operators and ExpressionParser.precedence(operators[-1]) >= prec:
                    ExpressionParser._reduce(operands, operators)
                operators.append(token)
                expect_operand = True

        while operators:
            ExpressionParser._reduce(operands, operators)

        if len(operands) != 1:
            raise MalformedExpressionError(f"{len(operands)} operands left: {expr!r}")

        return operands[0]
