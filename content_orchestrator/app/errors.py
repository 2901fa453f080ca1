"""
Domain errors. All subclass ValueError and carry a stable `code` (snake_case) so callers
can branch on str(e) / e.code the same way for every failure.
"""
from typing import Any, Dict, Optional


class OrchestratorError(ValueError):
    """Base error; `code` is the machine-readable reason."""

    code = "orchestrator_error"

    def __init__(self, code: Optional[str] = None, detail: Optional[str] = None, **extra: Any) -> None:
        if code is not None:
            self.code = code
        self.detail = detail or self.code
        self.extra: Dict[str, Any] = extra
        super().__init__(self.code)


class NotFoundError(OrchestratorError):
    """Missing content/job, or the caller does not own it."""

    code = "not_found"


class InvalidStateError(OrchestratorError):
    """Transition not legal from the current status."""

    code = "invalid_state"


class InvalidScheduleError(OrchestratorError):
    """Non-future timestamp or malformed cron expression."""

    code = "invalid_schedule"


class NoPendingApprovalError(OrchestratorError):
    code = "no_pending_approval"


class PublishExecutionError(OrchestratorError):
    """Publish executor (social platform) failed or timed out."""

    code = "publish_failed"


class GenerationError(OrchestratorError):
    """AI content generator failed or returned unusable output."""

    code = "generation_failed"
