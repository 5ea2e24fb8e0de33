"""Builds submission records from validated payloads."""

import hashlib
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from formgate.fields import FormDefinition
from formgate.records import SubmissionMeta, SubmissionRecord
from formgate.request import InboundRequest, get_client_ip
from formgate.types import SubmissionStatus


def hash_ip(ip: str) -> str:
    """One-way SHA-256 hash of a client IP. Raw IPs are never stored."""
    return hashlib.sha256(ip.encode("utf-8")).hexdigest()


def _generate_id() -> str:
    return f"sub_{uuid.uuid4().hex[:16]}"


class SubmissionAssembler:
    """Assembles SubmissionRecords and decides whether to notify.

    Attributes:
        id_factory: Produces new submission ids
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None) -> None:
        self.id_factory = id_factory or _generate_id

    def build_meta(self, request: InboundRequest, ip_hash: Optional[str] = None) -> SubmissionMeta:
        return SubmissionMeta(
            ip_hash=ip_hash or hash_ip(get_client_ip(request)),
            user_agent=request.user_agent or "unknown",
            referrer=request.referer or None,
            origin=request.origin or None,
        )

    def build(
        self,
        form: FormDefinition,
        data: Dict[str, Any],
        request: InboundRequest,
        is_spam: bool,
        now: Optional[datetime] = None,
        ip_hash: Optional[str] = None,
    ) -> SubmissionRecord:
        """Build a NEW submission record.

        Args:
            form: Target form
            data: Normalized payload
            request: Inbound request the metadata is taken from
            is_spam: Honeypot verdict
            now: Creation time (defaults to now, UTC)
            ip_hash: Precomputed client IP hash
        """
        return SubmissionRecord(
            id=self.id_factory(),
            form_id=form.id,
            data=dict(data),
            meta=self.build_meta(request, ip_hash),
            created_at=now or datetime.now(timezone.utc),
            is_spam=is_spam,
            status=SubmissionStatus.NEW,
        )

    @staticmethod
    def should_notify(form: FormDefinition, record: SubmissionRecord) -> bool:
        """Notify only for non-spam submissions of forms with recipients."""
        return not record.is_spam and bool(form.recipients)


__all__ = [
    "hash_ip",
    "SubmissionAssembler",
]
