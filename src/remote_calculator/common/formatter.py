"""Render evaluation results as text."""
import math


# Integral values below this bound are exactly representable and render without a fraction
MAX_EXACT_INTEGER: int = 2 ** 53


def format_result(value: float) -> str:
    """
    Convert a numeric result to its canonical textual form.

    Integral values render as bare integers (``10``, never ``10.0``).
    Everything else uses the shortest string that round-trips to the same
    float, which is identical on every platform.

    :param float value: Evaluation result

    :return: Canonical text
    :rtype: str
    """
    if math.isfinite(value) and value.is_integer() and abs(value) < MAX_EXACT_INTEGER:
        return str(int(value))
    return repr(float(value))
