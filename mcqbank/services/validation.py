from typing import Optional, Sequence

from mcqbank.core.errors import BadRequestError
from mcqbank.models.orm import QuestionType


def _is_correct(option) -> bool:
    if isinstance(option, dict):
        return bool(option.get("is_correct"))
    return bool(getattr(option, "is_correct", False))


def _require_assertion_reasoning(assertion: Optional[str], reasoning: Optional[str]) -> None:
    if not (assertion and assertion.strip()) or not (reasoning and reasoning.strip()):
        raise BadRequestError("Assertion and Reasoning are required for assertion-reasoning questions")


def validate_question(qtype: Optional[QuestionType], options: Optional[Sequence] = None,
                      assertion: Optional[str] = None, reasoning: Optional[str] = None) -> None:
    """Check the answer options of a question against the rules of its type.

    Raises BadRequestError with a human readable reason; returns None when
    the question is structurally valid.
    """
    options = list(options or [])
    if not options:
        if qtype != QuestionType.ASSERTION_REASONING:
            raise BadRequestError("Options are required for this question type")
        # the four standard A/R options may be left implicit
        _require_assertion_reasoning(assertion, reasoning)
        return

    correct = sum(1 for o in options if _is_correct(o))

    if qtype == QuestionType.SINGLE_CHOICE:
        if correct != 1:
            raise BadRequestError("Single choice questions must have exactly one correct answer")
        if len(options) < 2:
            raise BadRequestError("Single choice questions must have at least 2 options")

    elif qtype == QuestionType.MULTIPLE_CHOICE:
        if correct < 2:
            raise BadRequestError("Multiple choice questions must have at least 2 correct answers")
        if len(options) < 2:
            raise BadRequestError("Multiple choice questions must have at least 2 options")

    elif qtype == QuestionType.TRUE_FALSE:
        if len(options) != 2:
            raise BadRequestError("True/False questions must have exactly 2 options")
        if correct != 1:
            raise BadRequestError("True/False questions must have exactly one correct answer")

    elif qtype == QuestionType.ASSERTION_REASONING:
        _require_assertion_reasoning(assertion, reasoning)
        if len(options) != 4:
            raise BadRequestError("Assertion-Reasoning questions must have exactly 4 options")
