"""Scoring evaluator.

Pure function from (content item, submission, question set) to an
achieved value and a pass flag. No I/O, no clock.

Submissions are a tagged union: a ``WatchSubmission`` for videos and an
``AnswersSubmission`` for quizzes. This is the only place that branches on
the submission kind.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from src.courses.models import ContentItem, QuestionSet

from .errors import InvalidSubmissionError, MissingAnswerError


@dataclass(frozen=True)
class WatchSubmission:
    """Percentage of a video the worker watched (0-100)."""

    watch_percentage: int


@dataclass(frozen=True)
class Answer:
    """One selected option."""

    question_id: UUID
    option_id: UUID


@dataclass(frozen=True)
class AnswersSubmission:
    """Selected options of a quiz, one per question."""

    answers: tuple[Answer, ...]


Submission = WatchSubmission | AnswersSubmission


@dataclass(frozen=True)
class Evaluation:
    """Result of scoring one submission."""

    achieved: int
    passed: bool


def percentage(earned: int, total: int) -> int:
    """Integer percentage, rounding half up. Zero total scores zero."""
    if total <= 0:
        return 0
    value = Decimal(earned) * 100 / Decimal(total)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _evaluate_watch(item: ContentItem, submission: WatchSubmission) -> Evaluation:
    watched = submission.watch_percentage
    if isinstance(watched, bool) or not isinstance(watched, int):
        raise InvalidSubmissionError("watch_percentage must be an integer")
    if not 0 <= watched <= 100:
        raise InvalidSubmissionError("watch_percentage must be between 0 and 100")
    return Evaluation(achieved=watched, passed=watched >= item.threshold)


def _evaluate_answers(
    item: ContentItem,
    submission: AnswersSubmission,
    question_set: QuestionSet | None,
) -> Evaluation:
    if question_set is None:
        raise InvalidSubmissionError("Quiz has no question set")

    selected: dict[UUID, UUID] = {}
    for answer in submission.answers:
        if question_set.question(answer.question_id) is None:
            raise MissingAnswerError(f"Unknown question {answer.question_id}")
        if answer.question_id in selected:
            raise MissingAnswerError(
                f"Question {answer.question_id} answered more than once"
            )
        selected[answer.question_id] = answer.option_id

    earned = 0
    for question in question_set.questions:
        option_id = selected.get(question.id)
        if option_id is None:
            raise MissingAnswerError(f"Question {question.id} was not answered")
        option = question.option(option_id)
        if option is None:
            raise MissingAnswerError(
                f"Option {option_id} does not belong to question {question.id}"
            )
        earned += question.weight_of(option)

    # Option weights may exceed the question's points; the score caps at 100
    achieved = min(percentage(earned, question_set.total_points), 100)
    return Evaluation(achieved=achieved, passed=achieved >= item.threshold)


def evaluate(
    item: ContentItem,
    submission: Submission,
    question_set: QuestionSet | None = None,
) -> Evaluation:
    """Score a submission against a content item.

    Args:
        item: The content item being attempted
        submission: Watch or answers submission
        question_set: Questions of the item (quizzes only)

    Returns:
        Achieved value (percentage) and whether it meets the threshold

    Raises:
        InvalidSubmissionError: Submission kind does not fit the item, or
            the watch percentage is out of range
        MissingAnswerError: Answers do not cover each question exactly once
    """
    if isinstance(submission, WatchSubmission):
        if not item.is_watchable:
            raise InvalidSubmissionError("Quiz items require answers")
        return _evaluate_watch(item, submission)

    if isinstance(submission, AnswersSubmission):
        if not item.is_assessable:
            raise InvalidSubmissionError("Video items require a watch percentage")
        return _evaluate_answers(item, submission, question_set)

    raise InvalidSubmissionError(f"Unsupported submission {type(submission).__name__}")
