"""Test suite for the Formgate submission engine.

This package contains tests for:
- Field validation per type (required, format, domain rules, dates, names, lengths)
- Field configuration schema checks and definition parsing
- Origin policy and sliding-window rate limiting
- Cutoffs, honeypot spam flagging and submission assembly
- Event dispatch and fire-and-forget notification
- The submission runtime end to end (statuses, bodies, side effects)
- The embed client render/collect engine and its HTTP transport
"""
