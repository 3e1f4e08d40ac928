"""Seed a demo course level and enroll a worker in it.

Creates a level with two videos, a quiz with a retry threshold and a final
exam, then enrolls a worker and prints a worker access token, so the API
can be tried end to end.

Usage:
    cd api && uv run python -m scripts.seed_demo_course [worker_uuid]
"""

import asyncio
import sys
from pathlib import Path
from uuid import UUID, uuid4

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from src.auth.permissions import UserRole
from src.auth.security import create_access_token
from src.config.settings import get_settings
from src.core.context import RequestContext
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.courses.models import (
    ContentKind,
    CourseLevel,
    Question,
    QuestionOption,
    new_content_item,
)
from src.progression.dependencies import create_progression_services


logger = structlog.get_logger(__name__)

QUESTIONS_PER_QUIZ = 5
OPTIONS_PER_QUESTION = 4


def build_questions(content_item_id: UUID, topic: str) -> list[Question]:
    """Multiple-choice questions whose first option is the correct one."""
    questions = []
    for number in range(1, QUESTIONS_PER_QUIZ + 1):
        question_id = uuid4()
        options = tuple(
            QuestionOption(
                id=uuid4(),
                question_id=question_id,
                text=f"{topic} answer {number}.{order}",
                is_correct=order == 1,
                order=order,
            )
            for order in range(1, OPTIONS_PER_QUESTION + 1)
        )
        questions.append(
            Question(
                id=question_id,
                content_item_id=content_item_id,
                text=f"{topic} question {number}",
                points=10,
                sequence_order=number,
                options=options,
            )
        )
    return questions


async def seed(worker_id: UUID) -> None:
    settings = get_settings()
    session = await init_async_cassandra()
    services = create_progression_services(session, settings)
    content = services.content

    level = CourseLevel(
        id=uuid4(),
        course_id=uuid4(),
        level_number=1,
        title="Workplace Safety - Level 1",
        description="Demo level",
        completion_window_days=settings.progression_default_window_days,
    )
    await content.save_level(level)

    items = [
        new_content_item(
            level.id,
            1,
            ContentKind.WATCHABLE,
            title="Introduction to workplace safety",
            video_url="https://videos.example.com/safety-intro.mp4",
            video_duration_seconds=600,
        ),
        new_content_item(
            level.id,
            2,
            ContentKind.ASSESSABLE,
            title="Safety basics quiz",
            retry_threshold=40,
        ),
        new_content_item(
            level.id,
            3,
            ContentKind.WATCHABLE,
            title="Protective equipment",
            video_url="https://videos.example.com/ppe.mp4",
            video_duration_seconds=900,
        ),
        new_content_item(
            level.id,
            4,
            ContentKind.ASSESSABLE,
            title="Final exam",
            max_attempts=2,
            is_final_exam=True,
        ),
    ]
    for item in items:
        await content.save_content_item(item)
        if item.is_assessable:
            for question in build_questions(item.id, item.title):
                await content.save_question(question)

    enrollment = await services.lifecycle.create_enrollment(worker_id, level.id)
    token = create_access_token({"sub": str(worker_id), "role": UserRole.WORKER.value})

    logger.info(
        "demo_course_seeded",
        course_level_id=str(level.id),
        enrollment_id=str(enrollment.id),
        worker_id=str(worker_id),
        content_item_ids=[str(item.id) for item in items],
    )
    print(f"enrollment_id={enrollment.id}")
    print(f"worker_token={token}")


async def run() -> None:
    worker_id = UUID(sys.argv[1]) if len(sys.argv) > 1 else uuid4()
    with RequestContext(correlation_id="seed-demo-course"):
        try:
            await seed(worker_id)
        finally:
            await shutdown_async_cassandra()


if __name__ == "__main__":
    asyncio.run(run())
