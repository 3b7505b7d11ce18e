"""
rental_services -- infrastructure services shared by the domain modules.

Architecture position:
    Services layer.  May import rental_engines, rental_kernel and
    rental_config.  MUST NOT import rental_modules.
"""

from rental_services.notifications import (
    LoggingNotifier,
    Notification,
    NotificationKind,
    Notifier,
    RecordingNotifier,
    send_safely,
)
from rental_services.rate_limiter import RateLimitDecision, SlidingWindowRateLimiter
from rental_services.workflow_executor import (
    GuardExecutor,
    TransitionResult,
    WorkflowExecutor,
)

__all__ = [
    "GuardExecutor",
    "LoggingNotifier",
    "Notification",
    "NotificationKind",
    "Notifier",
    "RateLimitDecision",
    "RecordingNotifier",
    "SlidingWindowRateLimiter",
    "TransitionResult",
    "WorkflowExecutor",
    "send_safely",
]
