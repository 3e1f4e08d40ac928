"""Content graph service layer.

Read side for:
- Course levels (completion window)
- Ordered content items of a level
- Question sets of quiz items

Content does not change during a course run, so reads are cached
in-process per level / item. Authoring writes (used by seeding and
course management) invalidate the cache.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from cachetools import TTLCache

from src.courses.models import (
    ContentItem,
    CourseLevel,
    GradingDefaults,
    Question,
    QuestionOption,
    QuestionSet,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

_CACHE_MAXSIZE = 1024


class ContentGraph:
    """Read-only view of course levels and their content sequence."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        defaults: GradingDefaults | None = None,
        cache_ttl_seconds: int = 300,
    ):
        """Initialize with Cassandra session.

        Args:
            session: Cassandra session with aexecute()
            keyspace: Keyspace name
            defaults: Grading parameters for items authored without them
            cache_ttl_seconds: Cache lifetime, 0 disables caching
        """
        self.session = session
        self.keyspace = keyspace
        self.defaults = defaults or GradingDefaults()
        self._cache: TTLCache | None = (
            TTLCache(maxsize=_CACHE_MAXSIZE, ttl=cache_ttl_seconds)
            if cache_ttl_seconds > 0
            else None
        )
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_level = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_levels WHERE id = ?
        """)

        self._get_items = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.content_items
            WHERE course_level_id = ?
        """)

        self._get_questions = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.questions WHERE content_item_id = ?
        """)

        self._get_options = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.question_options
            WHERE content_item_id = ?
        """)

        self._insert_level = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_levels
            (id, course_id, level_number, title, description,
             completion_window_days, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_item = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.content_items
            (course_level_id, sequence_order, id, title, kind, video_url,
             video_duration_seconds, min_watch_percentage, passing_score,
             max_attempts, retry_threshold, is_eligibility_check, is_final_exam)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_question = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.questions
            (content_item_id, sequence_order, id, text, points)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._insert_option = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.question_options
            (content_item_id, question_id, option_order, id, text, is_correct,
             points)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Cache
    # ==========================================================================

    def _cached(self, key: tuple) -> Any:
        if self._cache is None:
            return None
        return self._cache.get(key)

    def _store(self, key: tuple, value: Any) -> None:
        if self._cache is not None:
            self._cache[key] = value

    def clear_cache(self) -> None:
        """Drop every cached level, item list and question set."""
        if self._cache is not None:
            self._cache.clear()
        logger.debug("content_cache_cleared")

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_level(self, course_level_id: UUID) -> CourseLevel | None:
        """Get a course level by ID."""
        key = ("level", course_level_id)
        level = self._cached(key)
        if level is not None:
            return level

        result = await self.session.aexecute(self._get_level, [course_level_id])
        row = result.one()
        if not row:
            return None
        level = CourseLevel.from_row(row, self.defaults)
        self._store(key, level)
        return level

    async def get_items(self, course_level_id: UUID) -> list[ContentItem]:
        """Get the content items of a level ordered by sequence position."""
        key = ("items", course_level_id)
        items = self._cached(key)
        if items is not None:
            return list(items)

        rows = await self.session.aexecute(self._get_items, [course_level_id])
        items = sorted(
            (ContentItem.from_row(row, self.defaults) for row in rows),
            key=lambda item: (item.sequence_order, str(item.id)),
        )
        self._store(key, tuple(items))
        return items

    async def get_item(
        self, course_level_id: UUID, content_item_id: UUID
    ) -> ContentItem | None:
        """Get one content item if it belongs to the level."""
        for item in await self.get_items(course_level_id):
            if item.id == content_item_id:
                return item
        return None

    async def get_question_set(self, content_item_id: UUID) -> QuestionSet:
        """Get the questions (with options) of a quiz item."""
        key = ("questions", content_item_id)
        question_set = self._cached(key)
        if question_set is not None:
            return question_set

        question_rows = await self.session.aexecute(
            self._get_questions, [content_item_id]
        )
        option_rows = await self.session.aexecute(self._get_options, [content_item_id])

        options_by_question: dict[UUID, list[QuestionOption]] = {}
        for row in option_rows:
            options_by_question.setdefault(row.question_id, []).append(
                QuestionOption.from_row(row)
            )

        questions = []
        for row in question_rows:
            options = sorted(
                options_by_question.get(row.id, []), key=lambda o: o.order
            )
            questions.append(
                Question(
                    id=row.id,
                    content_item_id=content_item_id,
                    text=row.text or "",
                    points=row.points if row.points is not None else 1,
                    sequence_order=row.sequence_order or 0,
                    options=tuple(options),
                )
            )
        questions.sort(key=lambda q: q.sequence_order)

        question_set = QuestionSet(
            content_item_id=content_item_id, questions=tuple(questions)
        )
        self._store(key, question_set)
        return question_set

    # ==========================================================================
    # Authoring writes
    # ==========================================================================

    async def save_level(self, level: CourseLevel) -> CourseLevel:
        """Create or replace a course level."""
        await self.session.aexecute(
            self._insert_level,
            [
                level.id,
                level.course_id,
                level.level_number,
                level.title,
                level.description,
                level.completion_window_days,
                level.created_at or datetime.now(UTC),
            ],
        )
        self.clear_cache()
        logger.info("course_level_saved", course_level_id=str(level.id))
        return level

    async def save_content_item(self, item: ContentItem) -> ContentItem:
        """Create or replace a content item of a level."""
        await self.session.aexecute(
            self._insert_item,
            [
                item.course_level_id,
                item.sequence_order,
                item.id,
                item.title,
                item.kind.value,
                item.video_url,
                item.video_duration_seconds,
                item.min_watch_percentage,
                item.passing_score,
                item.max_attempts,
                item.retry_threshold,
                item.is_eligibility_check,
                item.is_final_exam,
            ],
        )
        self.clear_cache()
        logger.info(
            "content_item_saved",
            content_item_id=str(item.id),
            course_level_id=str(item.course_level_id),
            sequence_order=item.sequence_order,
        )
        return item

    async def save_question(self, question: Question) -> Question:
        """Create or replace a question and its options."""
        await self.session.aexecute(
            self._insert_question,
            [
                question.content_item_id,
                question.sequence_order,
                question.id,
                question.text,
                question.points,
            ],
        )
        for option in question.options:
            await self.session.aexecute(
                self._insert_option,
                [
                    question.content_item_id,
                    question.id,
                    option.order,
                    option.id,
                    option.text,
                    option.is_correct,
                    option.points,
                ],
            )
        self.clear_cache()
        return question
