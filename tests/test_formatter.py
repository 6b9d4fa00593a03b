"""Test function format_result."""
import pytest

from remote_calculator.common.formatter import format_result
from remote_calculator.common.parser import ExpressionParser


@pytest.mark.parametrize("value,expected", [
    (10.0, "10"),
    (-4.0, "-4"),
    (0.0, "0"),
    (3.5, "3.5"),
    (0.1 + 0.2, "0.30000000000000004"),
    (1 / 3, "0.3333333333333333"),
    (2.0 ** 60, "1.152921504606847e+18"),
    (float("inf"), "inf"),
])
def test_format_result(value, expected):
    assert format_result(value) == expected


def test_integers_have_no_fraction():
    assert format_result(ExpressionParser.evaluate("4 + 6")) == "10"


@pytest.mark.parametrize("expr", ["7 / 2", "1 / 3", "999 * 999 * 999", "0.1 * 3"])
def test_formatted_results_round_trip(expr):
    """Parsing the formatted text back gives the exact same value."""
    value = ExpressionParser.evaluate(expr)
    assert float(format_result(value)) == value
