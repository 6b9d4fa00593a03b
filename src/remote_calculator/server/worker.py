"""Worker evaluating one arithmetic expression into a wire response."""
from pydantic import BaseModel, ConfigDict, Field

from remote_calculator.common.errors import CalculatorError
from remote_calculator.common.formatter import format_result
from remote_calculator.common.logger import logger
from remote_calculator.common.parser import ExpressionParser
from remote_calculator.common.validator import ExpressionValidator


class ExpressionWorker(BaseModel):
    """
    Worker responsible for answering a single arithmetic expression.

    Lifecycle:
        - Created by a session for one received expression
        - Validates, evaluates and formats the expression
        - Returns the text to send back, a result or an error message

    Input and evaluation errors never escape ``run``: they are part of the
    response vocabulary and the conversation goes on.
    """

    # Make the Pydantic instance immutable (read-only) for safety
    model_config = ConfigDict(frozen=True)

    expression: str = Field(..., description="Single arithmetic expression to evaluate")
    peer: str = Field(default="-", description="Peer address, for logging only")

    def run(self) -> str:
        """
        Compute the response for the expression.

        :return: Formatted result, or the error message on failure
        :rtype: str
        """
        logger.debug(f"👷🏁 Worker started for {self.peer}: {self.expression!r}")

        try:
            expression = ExpressionValidator.check(self.expression)
            response = format_result(ExpressionParser.evaluate(expression))
        except CalculatorError as exc:
            logger.warning(f"👷❌ Rejected {self.expression!r} from {self.peer}: {exc}")
            return exc.message

        logger.info(f"👷✅ {self.expression!r} = {response} for {self.peer}")
        return response


def compute_response(expression: str, peer: str = "-") -> str:
    """Shortcut running an ExpressionWorker."""
    return ExpressionWorker(expression=expression, peer=peer).run()
