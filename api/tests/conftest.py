"""Shared fixtures."""

import os


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from collections.abc import Iterator
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from src.auth.permissions import UserRole
from src.auth.security import create_access_token
from src.courses.models import CourseLevel, QuestionSet
from src.main import app
from src.progression.dependencies import ProgressionServices
from tests.fakes import (
    FakeClock,
    FakeContentGraph,
    FakeProgressRepository,
    build_services,
    make_question_set,
    quiz,
    video,
)


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Test client without lifespan (no database connection)."""
    previous = getattr(app.state, "progression", None)
    yield TestClient(app)
    app.state.progression = previous


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def content() -> FakeContentGraph:
    return FakeContentGraph()


@pytest.fixture
def repository() -> FakeProgressRepository:
    return FakeProgressRepository()


@pytest.fixture
def services(
    content: FakeContentGraph,
    repository: FakeProgressRepository,
    clock: FakeClock,
) -> ProgressionServices:
    return build_services(content, repository, clock)


@pytest.fixture
def worker_id() -> UUID:
    return uuid4()


class CourseFixture:
    """A level: video, quiz, video, final exam."""

    def __init__(self, content: FakeContentGraph):
        level_id = uuid4()
        self.intro = video(level_id, 1, title="Intro")
        self.quiz = quiz(level_id, 2, title="Quiz", passing_score=70, max_attempts=3)
        self.lesson = video(level_id, 3, title="Lesson")
        self.final = quiz(
            level_id, 4, title="Final exam", max_attempts=2, is_final_exam=True
        )
        self.items = [self.intro, self.quiz, self.lesson, self.final]
        self.level: CourseLevel = content.add_level(
            self.items,
            CourseLevel(
                id=level_id,
                course_id=uuid4(),
                level_number=1,
                title="Safety",
                completion_window_days=30,
            ),
        )
        self.quiz_questions: QuestionSet = make_question_set(self.quiz.id)
        self.final_questions: QuestionSet = make_question_set(self.final.id)
        content.add_question_set(self.quiz_questions)
        content.add_question_set(self.final_questions)


@pytest.fixture
def course(content: FakeContentGraph) -> CourseFixture:
    return CourseFixture(content)


def token_for(user_id: UUID, role: UserRole) -> str:
    """Access token with the claims of the identity service."""
    return create_access_token({"sub": str(user_id), "role": role.value})


def auth_header(user_id: UUID, role: UserRole = UserRole.WORKER) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user_id, role)}"}
