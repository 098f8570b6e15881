"""
Review events and the in-process event bus.

Events are published after a transition has been written. Subscribers run
synchronously in registration order; a failing subscriber is logged and
skipped, and never undoes the transition that produced the event.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from medreview.core.logging import audit_logger, get_logger
from medreview.db.models import AuditLog
from medreview.services.review_workflow import utcnow

logger = get_logger(__name__)


class ReviewEventType(str, enum.Enum):
    SUBMISSION_CREATED = "SubmissionCreated"
    BD_APPROVED = "BDApproved"
    SCORES_SUBMITTED = "ScoresSubmitted"
    FINAL_DECISION_RECORDED = "FinalDecisionRecorded"
    SUBMISSION_REOPENED = "SubmissionReopened"
    REVENUE_ESTIMATE_UPDATED = "RevenueEstimateUpdated"
    REPORT_GENERATED = "ReportGenerated"


@dataclass(frozen=True)
class ReviewEvent:
    type: ReviewEventType
    submission_id: str
    brand_id: str
    actor_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "submission_id": self.submission_id,
            "brand_id": self.brand_id,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewEvent":
        occurred_at = data.get("occurred_at")
        return cls(
            type=ReviewEventType(data["type"]),
            submission_id=data["submission_id"],
            brand_id=data["brand_id"],
            actor_id=data.get("actor_id"),
            payload=data.get("payload") or {},
            occurred_at=datetime.fromisoformat(occurred_at) if occurred_at else utcnow(),
        )


Subscriber = Callable[[ReviewEvent], None]


class ReviewEventBus:
    """Synchronous publish/subscribe for review events."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber):
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    @property
    def subscribers(self) -> List[Subscriber]:
        return list(self._subscribers)

    def publish(self, event: ReviewEvent) -> int:
        """Deliver ``event`` to every subscriber; returns how many succeeded."""
        delivered = 0
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
                delivered += 1
            except Exception:
                logger.exception(
                    f"Subscriber {getattr(subscriber, '__name__', subscriber)!r} failed "
                    f"on {event.type.value} for submission {event.submission_id}"
                )
        return delivered


class AuditTrailSubscriber:
    """Writes an AuditLog row and an AUDIT log line per event."""

    entity_type = "medical_review"

    def __init__(self, db: Session):
        self.db = db

    def __call__(self, event: ReviewEvent):
        details = {"brand_id": event.brand_id, **event.payload}
        self.db.add(AuditLog(
            actor_id=event.actor_id,
            action=event.type.value,
            entity_type=self.entity_type,
            entity_id=event.submission_id,
            details=details,
        ))
        self.db.flush()
        audit_logger.log(
            action=event.type.value,
            actor_id=event.actor_id,
            entity_type=self.entity_type,
            entity_id=event.submission_id,
            details=details,
        )


class QueueDispatchSubscriber:
    """Forwards events to the RQ queue for out-of-process consumers."""

    def __call__(self, event: ReviewEvent):
        from medreview.workers.jobs import enqueue_review_event
        enqueue_review_event(event.to_dict())
