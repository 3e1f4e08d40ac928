"""Course progression and certification engine.

Provides:
- Scoring of watch and quiz submissions
- Sequential unlocking of content items
- Enrollment lifecycle (active, completed, failed, expired)
- Certificate issuance
"""

from .certificates import CertificateIssuer
from .engine import ContentTree, ProgressionEngine, ProgressResult
from .errors import STORE_ERRORS, ProgressionError
from .evaluator import Answer, AnswersSubmission, WatchSubmission, evaluate
from .lifecycle import EnrollmentLifecycle
from .locks import EnrollmentLocks


__all__ = [
    "STORE_ERRORS",
    "Answer",
    "AnswersSubmission",
    "CertificateIssuer",
    "ContentTree",
    "EnrollmentLifecycle",
    "EnrollmentLocks",
    "ProgressResult",
    "ProgressionEngine",
    "ProgressionError",
    "WatchSubmission",
    "evaluate",
]
