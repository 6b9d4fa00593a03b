"""Validate raw expressions before they reach the evaluator."""
from enum import Enum
import re
from typing import List, Optional, Pattern

from pydantic import BaseModel, ConfigDict, Field

from remote_calculator.common.errors import (
    EmptyExpressionError,
    ExpressionTooLongError,
    InputError,
    InvalidExpressionError,
    OutOfRangeError,
)


# Only digits, whitespace, the four operators, the decimal point and parentheses
ALLOWED_CHARACTERS: Pattern[str] = re.compile(r"^[\d\s+\-*/.()]*$", re.ASCII)
# Maximal integer or decimal literal
NUMBER_LITERAL: Pattern[str] = re.compile(r"\d+(?:\.\d*)?", re.ASCII)
# Every literal must stay strictly below this absolute value
MAX_MAGNITUDE: float = 1000.0
# Longest accepted expression in characters, so that a request fits one 1024-byte datagram
MAX_EXPRESSION_LENGTH: int = 256


class ValidationStatus(str, Enum):
    """Outcome of a validation."""

    VALID = "valid"
    EMPTY = "empty"
    TOO_LONG = "too_long"
    INVALID_EXPRESSION = "invalid_expression"
    OUT_OF_RANGE = "out_of_range"


_ERRORS = {
    ValidationStatus.EMPTY: EmptyExpressionError,
    ValidationStatus.TOO_LONG: ExpressionTooLongError,
    ValidationStatus.INVALID_EXPRESSION: InvalidExpressionError,
    ValidationStatus.OUT_OF_RANGE: OutOfRangeError,
}


class ValidationResult(BaseModel):
    """Result of validating one raw expression."""

    model_config = ConfigDict(frozen=True)

    expression: str = Field(..., description="Expression that was validated")
    status: ValidationStatus = Field(..., description="Validation outcome")

    @property
    def ok(self) -> bool:
        return self.status is ValidationStatus.VALID

    @property
    def error(self) -> Optional[InputError]:
        """Exception matching the status, or None when the expression is valid."""
        if self.ok:
            return None
        return _ERRORS[self.status](self.expression)

    @property
    def message(self) -> Optional[str]:
        """Wire message matching the status, or None when the expression is valid."""
        return None if self.ok else _ERRORS[self.status].message


class ExpressionValidator:
    """
    Gate raw strings before they are evaluated.

    The same rules run on both sides of the wire, so the client can reject
    an expression locally and the server never trusts the client to have done so.

    Checks, in order:
        1. Empty or whitespace-only input
        2. Length: at most ``MAX_EXPRESSION_LENGTH`` characters
        3. Character set: digits, whitespace, ``+ - * / . ( )``
        4. Magnitude: every numeric literal must satisfy ``abs(value) < 1000``
    """

    @staticmethod
    def numbers(raw: str) -> List[float]:
        """
        Extract every maximal numeric literal of an expression.

        :param str raw: Expression string

        :return: Parsed literals, in order of appearance
        :rtype: List[float]
        """
        return [float(match.group()) for match in NUMBER_LITERAL.finditer(raw)]

    @staticmethod
    def validate(raw: str) -> ValidationResult:
        """
        Validate a raw expression without raising.

        :param str raw: Expression string as received from the user or the wire

        :return: Validation result
        :rtype: ValidationResult
        """
        if not raw.strip():
            status = ValidationStatus.EMPTY
        elif len(raw) > MAX_EXPRESSION_LENGTH:
            status = ValidationStatus.TOO_LONG
        elif not ALLOWED_CHARACTERS.match(raw):
            status = ValidationStatus.INVALID_EXPRESSION
        elif any(abs(value) >= MAX_MAGNITUDE for value in ExpressionValidator.numbers(raw)):
            status = ValidationStatus.OUT_OF_RANGE
        else:
            status = ValidationStatus.VALID
        return ValidationResult(expression=raw, status=status)

    @staticmethod
    def check(raw: str) -> str:
        """
        Validate a raw expression and raise on failure.

        :param str raw: Expression string

        :return: The expression, unchanged
        :rtype: str
        :raises InputError: If the expression is empty, too long, contains forbidden characters or out of range numbers
        """
        result = ExpressionValidator.validate(raw)
        if not result.ok:
            raise result.error
        return raw
