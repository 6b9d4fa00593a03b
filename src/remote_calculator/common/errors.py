"""Exception taxonomy shared by the client and the server.

Every error carries a short ``message`` which is what travels on the wire
when the error is reported to the peer.
"""


class CalculatorError(Exception):
    """Base class for all remote calculator errors."""

    message: str = "Calculator error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(f"{self.message}: {detail}" if detail else self.message)


# Input errors: rejected before evaluation, conversation continues
class InputError(CalculatorError, ValueError):
    message = "Invalid input"


class EmptyExpressionError(InputError):
    message = "Empty expression"


class InvalidExpressionError(InputError):
    message = "Invalid expression"


class ExpressionTooLongError(InputError):
    message = "Expression too long"


class OutOfRangeError(InputError):
    message = "Number out of range"


# Evaluation errors: raised by the evaluator, conversation continues
class EvaluationError(CalculatorError, ValueError):
    message = "Evaluation error"


class DivisionByZeroError(EvaluationError):
    message = "Division by zero"


class InvalidOperatorError(EvaluationError):
    message = "Invalid operator"


class MalformedExpressionError(EvaluationError):
    message = "Malformed expression"


# Transport errors: fatal to the current conversation only
class TransportError(CalculatorError, OSError):
    message = "Transport error"


class ProtocolError(TransportError):
    message = "Protocol error"


class LostConnectivityError(TransportError):
    message = "Lost connection to server"


class ServerSetupError(CalculatorError, RuntimeError):
    message = "Server setup failed"
