"""Submission policy: cutoffs and honeypot spam classification.

Cutoffs (``stop_at``, ``max_submissions``) are cheap and run before field
validation. Spam classification runs after validation passes; a filled
honeypot never produces an error, the submission is stored flagged as spam
and the caller still gets a success response so bots learn nothing.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from formgate.errors import SubmissionWindowClosed
from formgate.fields import FormDefinition

logger = logging.getLogger(__name__)

WINDOW_CLOSED_MESSAGE = "This form is no longer accepting submissions."
LIMIT_REACHED_MESSAGE = "This form has reached its maximum number of submissions."


def _comparable(moment: datetime, reference: datetime) -> datetime:
    # Naive stop times are stored in UTC.
    if moment.tzinfo is None and reference.tzinfo is not None:
        return moment.replace(tzinfo=timezone.utc)
    if moment.tzinfo is not None and reference.tzinfo is None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


class SubmissionPolicy:
    """Decides whether a form currently accepts submissions and flags spam.

    Examples:
        >>> from formgate.fields import FormDefinition
        >>> form = FormDefinition(id="f1", name="Contact", honeypot_field="website")
        >>> SubmissionPolicy().is_spam(form, {"website": "http://spam.example"})
        True
    """

    def check_submittable(self, form: FormDefinition, now: datetime, non_spam_count: int) -> None:
        """Raise SubmissionWindowClosed if the form stopped accepting submissions.

        Args:
            form: The target form
            now: Current time
            non_spam_count: Prior submissions for the form not flagged as spam

        Raises:
            SubmissionWindowClosed: Stop time passed or submission cap reached
        """
        if form.stop_at is not None and _comparable(form.stop_at, now) <= now:
            logger.info("Form %s closed at %s", form.id, form.stop_at.isoformat())
            raise SubmissionWindowClosed(WINDOW_CLOSED_MESSAGE)

        if form.max_submissions is not None and non_spam_count >= form.max_submissions:
            logger.info("Form %s reached %d submissions", form.id, form.max_submissions)
            raise SubmissionWindowClosed(LIMIT_REACHED_MESSAGE)

    def needs_submission_count(self, form: FormDefinition) -> bool:
        """Whether check_submittable needs a count from the submission store."""
        return form.max_submissions is not None

    def is_spam(self, form: FormDefinition, payload: Mapping[str, Any]) -> bool:
        """True if the form's honeypot field was filled in."""
        if not form.honeypot_field:
            return False
        value = payload.get(form.honeypot_field)
        if isinstance(value, str):
            return value.strip() != ""
        return bool(value)


__all__ = [
    "SubmissionPolicy",
    "WINDOW_CLOSED_MESSAGE",
    "LIMIT_REACHED_MESSAGE",
]
