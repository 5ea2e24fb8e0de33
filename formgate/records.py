"""Persisted submission records."""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

from formgate.types import SubmissionStatus


@dataclass(frozen=True)
class SubmissionMeta:
    """Request metadata stored with a submission.

    The raw client IP is never kept, only its one-way hash.
    """
    ip_hash: str
    user_agent: str = "unknown"
    referrer: Optional[str] = None
    origin: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ipHash": self.ip_hash,
            "userAgent": self.user_agent,
            "referrer": self.referrer,
            "origin": self.origin,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionMeta":
        return cls(
            ip_hash=data["ipHash"],
            user_agent=data.get("userAgent") or "unknown",
            referrer=data.get("referrer"),
            origin=data.get("origin"),
        )


@dataclass(frozen=True)
class SubmissionRecord:
    """A stored submission.

    Created once by the assembler. Afterwards only the status and the spam
    flag change, through the helpers below; records are never deleted here.

    Attributes:
        id: Submission identifier
        form_id: Form the submission belongs to
        data: Normalized payload
        meta: Request metadata
        is_spam: Whether the honeypot was filled in
        status: NEW, READ or ARCHIVED
        created_at: Creation time (UTC)
    """
    id: str
    form_id: str
    data: Dict[str, Any]
    meta: SubmissionMeta
    created_at: datetime
    is_spam: bool = False
    status: SubmissionStatus = SubmissionStatus.NEW

    def mark_read(self) -> "SubmissionRecord":
        return replace(self, status=SubmissionStatus.READ)

    def archive(self) -> "SubmissionRecord":
        return replace(self, status=SubmissionStatus.ARCHIVED)

    def toggle_spam(self) -> "SubmissionRecord":
        return replace(self, is_spam=not self.is_spam)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "formId": self.form_id,
            "data": self.data,
            "meta": self.meta.to_dict(),
            "isSpam": self.is_spam,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionRecord":
        return cls(
            id=data["id"],
            form_id=data["formId"],
            data=data.get("data") or {},
            meta=SubmissionMeta.from_dict(data["meta"]),
            created_at=datetime.fromisoformat(data["createdAt"].replace("Z", "+00:00")),
            is_spam=bool(data.get("isSpam")),
            status=SubmissionStatus(data.get("status") or SubmissionStatus.NEW.value),
        )


__all__ = [
    "SubmissionMeta",
    "SubmissionRecord",
]
