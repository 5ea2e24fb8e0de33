"""Submission runtime for public form endpoints.

This module provides the SubmissionRuntime that coordinates the origin
policy, rate limiter, submission policy, validation engine and assembler to
decide public requests. Cheap checks run first:

    form lookup -> origin -> rate limit -> body size/JSON -> cutoffs
    -> field validation -> spam flag -> store -> notify (fire-and-forget)

Every public method returns a SubmitResponse; rejections never escape as
exceptions. Unexpected failures are logged and reported as a generic 500.

Usage:
    >>> from formgate.fields import FieldDefinition, FormDefinition
    >>> from formgate.request import InboundRequest
    >>> from formgate.stores import InMemoryFormStore, InMemorySubmissionStore
    >>> from formgate.types import FieldType
    >>> forms = InMemoryFormStore()
    >>> forms.add_form(FormDefinition(
    ...     id="contact", name="Contact", allowed_origins=("acme.com",),
    ...     fields=(FieldDefinition(name="email", type=FieldType.EMAIL, label="Email", required=True),),
    ... ))
    >>> runtime = SubmissionRuntime(forms, InMemorySubmissionStore())
    >>> response = runtime.submit("contact", InboundRequest(
    ...     headers={"Origin": "https://acme.com"}, body=b'{"email": "ada@acme.com"}'))
    >>> response.status
    200
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Union

from formgate.assembler import SubmissionAssembler, hash_ip
from formgate.config import Settings, settings as default_settings
from formgate.errors import (
    FieldValidationFailed,
    InternalFailure,
    OriginRejected,
    RateLimited,
    SchemaLookupFailure,
    SubmissionRejected,
    SubmitResponse,
)
from formgate.events import EventEmitter, SubmissionEvent
from formgate.fields import FieldDefinition, FormDefinition
from formgate.origin import is_origin_allowed
from formgate.policy import SubmissionPolicy
from formgate.rate_limit import InMemoryRateLimiter, RateLimiter
from formgate.request import InboundRequest, get_client_ip, parse_field_value, parse_json_object
from formgate.stores import FormStore, NotificationSink, SubmissionStore
from formgate.types import EventType
from formgate.validation import ValidationEngine

logger = logging.getLogger(__name__)

AllowedOrigins = Union[str, Iterable[str]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionRuntime:
    """Orchestrates the decision for public form requests.

    Attributes:
        form_store: Form and site lookup
        submission_store: Where accepted submissions are written
        notifier: Receives accepted, non-spam submissions (optional)
        rate_limiter: Per-IP request limiter
        settings: Limits and payload cap
        engine: Field validation engine
        policy: Cutoff and spam policy
        assembler: Builds submission records
        emitter: Submission event dispatch
        notify_executor: Runs notification delivery off the request path
    """

    def __init__(
        self,
        form_store: FormStore,
        submission_store: SubmissionStore,
        notifier: Optional[NotificationSink] = None,
        rate_limiter: Optional[RateLimiter] = None,
        settings: Optional[Settings] = None,
        engine: Optional[ValidationEngine] = None,
        policy: Optional[SubmissionPolicy] = None,
        assembler: Optional[SubmissionAssembler] = None,
        emitter: Optional[EventEmitter] = None,
        clock: Optional[Callable[[], datetime]] = None,
        notify_executor: Optional[Executor] = None,
    ):
        self.form_store = form_store
        self.submission_store = submission_store
        self.notifier = notifier
        self.settings = settings or default_settings
        self.rate_limiter = rate_limiter or InMemoryRateLimiter(
            stale_after_ms=self.settings.rate_limit_stale_after_ms
        )
        self.clock = clock or _utcnow
        self.engine = engine or ValidationEngine(clock=self.clock)
        self.policy = policy or SubmissionPolicy()
        self.assembler = assembler or SubmissionAssembler()
        self.emitter = emitter or EventEmitter()
        self._owns_notify_executor = notify_executor is None
        self.notify_executor = notify_executor or ThreadPoolExecutor(
            max_workers=self.settings.notify_max_workers,
            thread_name_prefix="formgate-notify",
        )

        if notifier is not None:
            self.emitter.on(EventType.SUBMISSION_ACCEPTED, self._dispatch_notification)

    def close(self) -> None:
        """Wait for pending notifications and release the notification workers.

        Only an executor the runtime created itself is shut down.
        """
        if self._owns_notify_executor:
            self.notify_executor.shutdown(wait=True)

    # Public entry points

    def submit(self, form_id: str, request: InboundRequest) -> SubmitResponse:
        """Handle a full-form submission to a form addressed by id."""
        def handle() -> SubmitResponse:
            form = self._load_form(form_id)
            return self._submit_form(form, form.allowed_origins, request)
        return self._respond(form_id, handle)

    def submit_to_site(self, api_key: str, slug: str, request: InboundRequest) -> SubmitResponse:
        """Handle a full-form submission addressed by site API key and form slug.

        The site's single domain is the origin policy for these requests.
        """
        def handle() -> SubmitResponse:
            site = self.form_store.get_site_by_api_key(api_key)
            if site is None:
                raise SchemaLookupFailure("Site not found")
            form = self.form_store.get_form_by_slug(site.id, slug)
            if form is None:
                raise SchemaLookupFailure("Form not found")
            return self._submit_form(form, site.domain, request)
        return self._respond(slug, handle)

    def submit_field(self, form_id: str, field_name: str, request: InboundRequest) -> SubmitResponse:
        """Handle a single-field submission.

        Only the named field is validated and stored. The body is either
        ``{"value": ...}`` JSON, a bare JSON value, or plain text.
        """
        def handle() -> SubmitResponse:
            form = self._load_form(form_id)
            self._check_origin(request, form.allowed_origins)
            ip_hash = self._check_rate(request, self.settings.submit_rate_limit_max,
                                       self.settings.submit_rate_limit_window_ms)
            value = parse_field_value(request, self.settings.max_payload_bytes)
            field_def = form.get_field(field_name)
            if field_def is None:
                raise SchemaLookupFailure("Field not found")
            return self._accept(form, [field_def], {field_name: value}, request, ip_hash)
        return self._respond(form_id, handle)

    def get_embed_definition(self, form_id: str, request: InboundRequest) -> SubmitResponse:
        """Return the public form definition the embed widget renders."""
        def handle() -> SubmitResponse:
            form = self._load_form(form_id)
            return self._definition(form, form.allowed_origins, request)
        return self._respond(form_id, handle, emit=False)

    def get_site_embed_definition(self, api_key: str, slug: str, request: InboundRequest) -> SubmitResponse:
        def handle() -> SubmitResponse:
            site = self.form_store.get_site_by_api_key(api_key)
            if site is None:
                raise SchemaLookupFailure("Site not found")
            form = self.form_store.get_form_by_slug(site.id, slug)
            if form is None:
                raise SchemaLookupFailure("Form not found")
            return self._definition(form, site.domain, request)
        return self._respond(slug, handle, emit=False)

    # Pipeline steps

    def _load_form(self, form_id: str) -> FormDefinition:
        form = self.form_store.get_form_with_fields(form_id)
        if form is None:
            raise SchemaLookupFailure("Form not found")
        return form

    def _check_origin(self, request: InboundRequest, allowed: AllowedOrigins) -> None:
        if not is_origin_allowed(request.origin, allowed, request.referer):
            logger.info("Rejected origin %r", request.origin)
            raise OriginRejected()

    def _check_rate(self, request: InboundRequest, max_requests: int, window_ms: int, scope: str = "submit") -> str:
        ip_hash = hash_ip(get_client_ip(request))
        # Definition fetches and submissions are counted separately.
        if self.rate_limiter.is_rate_limited(f"{scope}:{ip_hash}", max_requests, window_ms):
            raise RateLimited()
        return ip_hash

    def _submit_form(self, form: FormDefinition, allowed: AllowedOrigins, request: InboundRequest) -> SubmitResponse:
        self._check_origin(request, allowed)
        ip_hash = self._check_rate(request, self.settings.submit_rate_limit_max,
                                   self.settings.submit_rate_limit_window_ms)
        payload = parse_json_object(request, self.settings.max_payload_bytes)
        return self._accept(form, form.fields, payload, request, ip_hash)

    def _accept(
        self,
        form: FormDefinition,
        fields: Iterable[FieldDefinition],
        payload: Dict[str, Any],
        request: InboundRequest,
        ip_hash: str,
    ) -> SubmitResponse:
        now = self.clock()
        count = (
            self.submission_store.count_non_spam_submissions(form.id)
            if self.policy.needs_submission_count(form) else 0
        )
        self.policy.check_submittable(form, now, count)

        result = self.engine.validate(fields, payload, now=now)
        if not result.is_valid:
            raise FieldValidationFailed(result.errors)

        is_spam = self.policy.is_spam(form, payload)
        record = self.assembler.build(form, result.data, request, is_spam, now=now, ip_hash=ip_hash)
        submission_id = self.submission_store.create_submission(record)

        if is_spam:
            logger.info("Submission %s to form %s flagged as spam", submission_id, form.id)
            event_type = EventType.SUBMISSION_SPAM
            event_payload: Dict[str, Any] = {"formName": form.name}
        else:
            event_type = EventType.SUBMISSION_ACCEPTED
            recipients = form.recipients if self.assembler.should_notify(form, record) else []
            event_payload = {"formName": form.name, "recipients": recipients}

        self.emitter.emit(SubmissionEvent(
            type=event_type,
            form_id=form.id,
            ts=record.created_at,
            submission_id=submission_id,
            payload=event_payload,
        ))
        return SubmitResponse.success(submission_id)

    def _definition(self, form: FormDefinition, allowed: AllowedOrigins, request: InboundRequest) -> SubmitResponse:
        self._check_origin(request, allowed)
        self._check_rate(request, self.settings.embed_rate_limit_max,
                         self.settings.embed_rate_limit_window_ms, scope="embed")
        body: Dict[str, Any] = {
            "formId": form.id,
            "slug": form.slug,
            "fields": [f.to_dict() for f in form.fields],
        }
        if form.success_message:
            body["successMessage"] = form.success_message
        if form.redirect_url:
            body["redirectUrl"] = form.redirect_url
        if form.default_theme:
            body["defaultTheme"] = form.default_theme
        return SubmitResponse(status=200, body=body)

    def _respond(self, target: str, handle: Callable[[], SubmitResponse], emit: bool = True) -> SubmitResponse:
        try:
            return handle()
        except SubmissionRejected as error:
            if emit:
                self.emitter.emit(SubmissionEvent(
                    type=EventType.SUBMISSION_REJECTED,
                    form_id=target,
                    ts=self.clock(),
                    payload={"reason": error.rejection_type.value, "message": error.message},
                ))
            return SubmitResponse.from_rejection(error)
        except Exception:
            logger.exception("Unexpected failure handling request for %s", target)
            return SubmitResponse.from_rejection(InternalFailure())

    def _dispatch_notification(self, event: SubmissionEvent) -> None:
        if not (event.payload or {}).get("recipients"):
            return
        try:
            self.notify_executor.submit(self._notify, event)
        except RuntimeError:
            logger.warning("Notification executor closed, dropping notification for form %s", event.form_id)

    def _notify(self, event: SubmissionEvent) -> None:
        if self.notifier is None:
            return
        payload = event.payload or {}
        try:
            self.notifier.notify(event.form_id, payload.get("formName", ""), event.ts, payload["recipients"])
        except Exception:
            logger.exception("Notification failed for form %s", event.form_id)


__all__ = [
    "SubmissionRuntime",
]
