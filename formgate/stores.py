"""Collaborator interfaces and in-memory implementations.

The runtime reads forms from a FormStore, writes submissions to a
SubmissionStore and hands accepted submissions to a NotificationSink. Real
deployments back these with a database and a mail queue; the in-memory
versions here serve single-process use and tests.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from formgate.fields import FormDefinition, SiteDefinition
from formgate.records import SubmissionRecord

logger = logging.getLogger(__name__)


class FormStore(Protocol):
    def get_form_with_fields(self, form_id: str) -> Optional[FormDefinition]:
        ...

    def get_site_by_api_key(self, api_key: str) -> Optional[SiteDefinition]:
        ...

    def get_form_by_slug(self, site_id: str, slug: str) -> Optional[FormDefinition]:
        ...


class SubmissionStore(Protocol):
    def create_submission(self, record: SubmissionRecord) -> str:
        ...

    def count_non_spam_submissions(self, form_id: str) -> int:
        ...


class NotificationSink(Protocol):
    def notify(self, form_id: str, form_name: str, timestamp: datetime, recipients: Sequence[str]) -> None:
        ...


class InMemoryFormStore:
    """Form and site lookup backed by dicts."""

    def __init__(self) -> None:
        self._forms: Dict[str, FormDefinition] = {}
        self._sites: Dict[str, SiteDefinition] = {}

    def add_site(self, site: SiteDefinition) -> None:
        self._sites[site.api_key] = site

    def add_form(self, form: FormDefinition) -> None:
        self._forms[form.id] = form

    def get_form_with_fields(self, form_id: str) -> Optional[FormDefinition]:
        return self._forms.get(form_id)

    def get_site_by_api_key(self, api_key: str) -> Optional[SiteDefinition]:
        return self._sites.get(api_key)

    def get_form_by_slug(self, site_id: str, slug: str) -> Optional[FormDefinition]:
        for form in self._forms.values():
            if form.site_id == site_id and form.slug == slug:
                return form
        return None


class InMemorySubmissionStore:
    """Append-only submission storage backed by a dict."""

    def __init__(self) -> None:
        self._records: Dict[str, SubmissionRecord] = {}
        self._lock = threading.Lock()

    def create_submission(self, record: SubmissionRecord) -> str:
        with self._lock:
            if record.id in self._records:
                raise ValueError(f"Submission {record.id} already exists")
            self._records[record.id] = record
        return record.id

    def count_non_spam_submissions(self, form_id: str) -> int:
        with self._lock:
            return sum(1 for r in self._records.values() if r.form_id == form_id and not r.is_spam)

    def get(self, submission_id: str) -> Optional[SubmissionRecord]:
        return self._records.get(submission_id)

    def list_for_form(self, form_id: str) -> List[SubmissionRecord]:
        with self._lock:
            records = [r for r in self._records.values() if r.form_id == form_id]
        return sorted(records, key=lambda r: r.created_at)

    def update(self, record: SubmissionRecord) -> None:
        """Store a status/spam change made through the record helpers."""
        with self._lock:
            if record.id not in self._records:
                raise ValueError(f"Submission {record.id} not found")
            self._records[record.id] = record


class RecordingNotificationSink:
    """Keeps every notification in memory instead of sending it."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, datetime, Tuple[str, ...]]] = []

    def notify(self, form_id: str, form_name: str, timestamp: datetime, recipients: Sequence[str]) -> None:
        self.sent.append((form_id, form_name, timestamp, tuple(recipients)))
        logger.info("Notification for form %s recorded for %d recipient(s)", form_id, len(recipients))


__all__ = [
    "FormStore",
    "SubmissionStore",
    "NotificationSink",
    "InMemoryFormStore",
    "InMemorySubmissionStore",
    "RecordingNotificationSink",
]
