"""Course content graph.

Provides:
- Course levels with their completion window
- Ordered content sequence (videos and quizzes) per level
- Question sets for quiz items
"""

from .models import (
    COURSES_TABLES_CQL,
    ContentItem,
    ContentKind,
    CourseLevel,
    GradingDefaults,
    Question,
    QuestionOption,
    QuestionSet,
)


__all__ = [
    "COURSES_TABLES_CQL",
    "ContentItem",
    "ContentKind",
    "CourseLevel",
    "GradingDefaults",
    "Question",
    "QuestionOption",
    "QuestionSet",
]
