"""Content graph models for certification courses.

Cassandra table definitions and read-only entities for:
- Course levels: one purchasable step of a certification course
- Content items: the ordered sequence of videos and quizzes of a level
- Question sets: questions and options of a quiz item

Content is owned by course authoring; the progression engine only reads it.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


DEFAULT_COMPLETION_WINDOW_DAYS = 30
DEFAULT_MIN_WATCH_PERCENTAGE = 90
DEFAULT_PASSING_SCORE = 70
DEFAULT_MAX_ATTEMPTS = 3


class ContentKind(str, Enum):
    """How a content item is completed."""

    WATCHABLE = "watchable"  # Video, completed by watch percentage
    ASSESSABLE = "assessable"  # Quiz, completed by score


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_LEVELS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_levels (
    id UUID PRIMARY KEY,
    course_id UUID,
    level_number INT,
    title TEXT,
    description TEXT,
    completion_window_days INT,
    created_at TIMESTAMP
)
"""

# Partition per level, clustered by position so a level reads in order
CONTENT_ITEMS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.content_items (
    course_level_id UUID,
    sequence_order INT,
    id UUID,
    title TEXT,
    kind TEXT,
    video_url TEXT,
    video_duration_seconds INT,
    min_watch_percentage INT,
    passing_score INT,
    max_attempts INT,
    retry_threshold INT,
    is_eligibility_check BOOLEAN,
    is_final_exam BOOLEAN,
    PRIMARY KEY ((course_level_id), sequence_order, id)
) WITH CLUSTERING ORDER BY (sequence_order ASC, id ASC)
"""

QUESTIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.questions (
    content_item_id UUID,
    sequence_order INT,
    id UUID,
    text TEXT,
    points INT,
    PRIMARY KEY ((content_item_id), sequence_order, id)
) WITH CLUSTERING ORDER BY (sequence_order ASC, id ASC)
"""

# Options share the quiz partition so a whole question set is two reads
QUESTION_OPTIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.question_options (
    content_item_id UUID,
    question_id UUID,
    option_order INT,
    id UUID,
    text TEXT,
    is_correct BOOLEAN,
    points INT,
    PRIMARY KEY ((content_item_id), question_id, option_order, id)
)
"""

COURSES_TABLES_CQL = [
    COURSE_LEVELS_TABLE_CQL,
    CONTENT_ITEMS_TABLE_CQL,
    QUESTIONS_TABLE_CQL,
    QUESTION_OPTIONS_TABLE_CQL,
]


# ==============================================================================
# Entities
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _or_default(value: Any, default: Any) -> Any:
    return default if value is None else value


@dataclass(frozen=True)
class GradingDefaults:
    """Fallback grading parameters for items authored without them."""

    min_watch_percentage: int = DEFAULT_MIN_WATCH_PERCENTAGE
    passing_score: int = DEFAULT_PASSING_SCORE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    completion_window_days: int = DEFAULT_COMPLETION_WINDOW_DAYS

    @classmethod
    def from_settings(cls, settings: Any) -> "GradingDefaults":
        return cls(
            min_watch_percentage=settings.progression_default_min_watch_percentage,
            passing_score=settings.progression_default_passing_score,
            max_attempts=settings.progression_default_max_attempts,
            completion_window_days=settings.progression_default_window_days,
        )


@dataclass(frozen=True)
class CourseLevel:
    """A purchasable level of a course (Level 1 to Level 4)."""

    id: UUID
    course_id: UUID
    level_number: int
    title: str
    description: str | None = None
    completion_window_days: int = DEFAULT_COMPLETION_WINDOW_DAYS
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(
        cls, row: Any, defaults: GradingDefaults | None = None
    ) -> "CourseLevel":
        """Create CourseLevel from Cassandra row."""
        defaults = defaults or GradingDefaults()
        return cls(
            id=row.id,
            course_id=row.course_id,
            level_number=row.level_number or 1,
            title=row.title or "",
            description=row.description,
            completion_window_days=_or_default(
                row.completion_window_days, defaults.completion_window_days
            ),
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
        )


@dataclass(frozen=True)
class ContentItem:
    """One video or quiz in a level's content sequence.

    Attributes:
        id: Content item UUID
        course_level_id: Level the item belongs to
        sequence_order: Position within the level (ascending)
        kind: WATCHABLE or ASSESSABLE
        min_watch_percentage: Watch threshold (WATCHABLE)
        passing_score: Score threshold, 0-100 (ASSESSABLE)
        max_attempts: Submissions allowed before the item fails. None means
            unlimited, the default for videos
        retry_threshold: Scores below this send the worker back to the
            previous video instead of allowing a direct retry
        is_eligibility_check: Item gates entry into the level
        is_final_exam: Passing this item completes the enrollment
    """

    id: UUID
    course_level_id: UUID
    sequence_order: int
    kind: ContentKind
    title: str = ""
    video_url: str | None = None
    video_duration_seconds: int | None = None
    min_watch_percentage: int = DEFAULT_MIN_WATCH_PERCENTAGE
    passing_score: int = DEFAULT_PASSING_SCORE
    max_attempts: int | None = None
    retry_threshold: int | None = None
    is_eligibility_check: bool = False
    is_final_exam: bool = False

    @property
    def is_watchable(self) -> bool:
        return self.kind == ContentKind.WATCHABLE

    @property
    def is_assessable(self) -> bool:
        return self.kind == ContentKind.ASSESSABLE

    @property
    def threshold(self) -> int:
        """Value an achieved result must reach to pass this item."""
        return self.min_watch_percentage if self.is_watchable else self.passing_score

    def attempts_left(self, attempts_used: int) -> int | None:
        """Submissions still allowed, None when the item has no limit."""
        if self.max_attempts is None:
            return None
        return max(self.max_attempts - attempts_used, 0)

    @classmethod
    def from_row(
        cls, row: Any, defaults: GradingDefaults | None = None
    ) -> "ContentItem":
        """Create ContentItem from Cassandra row, filling authoring gaps."""
        defaults = defaults or GradingDefaults()
        kind = ContentKind(row.kind)
        max_attempts = row.max_attempts
        if kind == ContentKind.ASSESSABLE:
            max_attempts = _or_default(max_attempts, defaults.max_attempts)
        return cls(
            id=row.id,
            course_level_id=row.course_level_id,
            sequence_order=row.sequence_order,
            kind=kind,
            title=row.title or "",
            video_url=row.video_url,
            video_duration_seconds=row.video_duration_seconds,
            min_watch_percentage=_or_default(
                row.min_watch_percentage, defaults.min_watch_percentage
            ),
            passing_score=_or_default(row.passing_score, defaults.passing_score),
            max_attempts=max_attempts,
            retry_threshold=row.retry_threshold,
            is_eligibility_check=bool(row.is_eligibility_check),
            is_final_exam=bool(row.is_final_exam),
        )

    def __repr__(self) -> str:
        return f"<ContentItem {self.id} #{self.sequence_order} {self.kind.value}>"


@dataclass(frozen=True)
class QuestionOption:
    """A selectable answer. A correct option earns its weight."""

    id: UUID
    question_id: UUID
    text: str
    is_correct: bool = False
    order: int = 0
    points: int | None = None  # None: weighs the question's points

    @classmethod
    def from_row(cls, row: Any) -> "QuestionOption":
        return cls(
            id=row.id,
            question_id=row.question_id,
            text=row.text or "",
            is_correct=bool(row.is_correct),
            order=row.option_order or 0,
            points=row.points,
        )


@dataclass(frozen=True)
class Question:
    """A multiple-choice question with its options."""

    id: UUID
    content_item_id: UUID
    text: str
    points: int = 1
    sequence_order: int = 0
    options: tuple[QuestionOption, ...] = ()

    def option(self, option_id: UUID) -> QuestionOption | None:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None

    def weight_of(self, option: QuestionOption) -> int:
        """Points earned by selecting ``option``."""
        if not option.is_correct:
            return 0
        return self.points if option.points is None else option.points


@dataclass(frozen=True)
class QuestionSet:
    """Ordered questions of an assessable content item."""

    content_item_id: UUID
    questions: tuple[Question, ...] = ()

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

    def question(self, question_id: UUID) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None


def new_content_item(
    course_level_id: UUID,
    sequence_order: int,
    kind: ContentKind,
    **kwargs: Any,
) -> ContentItem:
    """Create a content item with a fresh id (authoring and seeding).

    Quizzes get the default attempt limit unless one is given; videos stay
    unlimited.
    """
    if kind == ContentKind.ASSESSABLE:
        kwargs.setdefault("max_attempts", DEFAULT_MAX_ATTEMPTS)
    return ContentItem(
        id=kwargs.pop("id", None) or uuid4(),
        course_level_id=course_level_id,
        sequence_order=sequence_order,
        kind=kind,
        **kwargs,
    )
