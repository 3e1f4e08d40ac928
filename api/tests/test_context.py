"""Tests for request context and settings."""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from src.config.settings import Settings
from src.core.context import (
    RequestContext,
    bind_enrollment,
    clear_context,
    get_context,
    get_correlation_id,
    set_user_id,
)
from src.courses.models import GradingDefaults


class TestContext:
    """Tests for contextvars helpers."""

    def test_bind_enrollment_scoped(self) -> None:
        enrollment_id = uuid4()
        with bind_enrollment(enrollment_id):
            assert get_context()["enrollment_id"] == str(enrollment_id)
        assert "enrollment_id" not in get_context()

    def test_request_context_restores_values(self) -> None:
        with RequestContext(correlation_id="expiry-sweep") as ctx:
            assert get_correlation_id() == "expiry-sweep"
            assert get_context()["request_id"] == ctx.request_id
        assert get_correlation_id() is None

    def test_clear_context(self) -> None:
        set_user_id(uuid4())
        clear_context()
        assert get_context() == {}


class TestSettings:
    """Tests for progression settings."""

    def test_grading_defaults_from_settings(self) -> None:
        settings = Settings(
            progression_default_passing_score=60,
            progression_default_max_attempts=5,
            progression_default_window_days=14,
        )

        defaults = GradingDefaults.from_settings(settings)

        assert defaults.passing_score == 60
        assert defaults.max_attempts == 5
        assert defaults.completion_window_days == 14
        assert defaults.min_watch_percentage == 90

    def test_passing_score_bounded(self) -> None:
        with pytest.raises(ValidationError):
            Settings(progression_default_passing_score=120)

    def test_window_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Settings(progression_default_window_days=0)
