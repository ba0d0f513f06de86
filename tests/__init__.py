"""Test suite for Formsmith.

This package contains tests for:
- Field and submission validation (messages, ordering, gates)
- Ingestion of AI-drafted forms (type coercion, option fallbacks)
- Publication state machine transitions
- Runtime scenarios (publish gate, submission gate, triage, ownership)
- Identity webhooks, form generation and the HTTP surface
"""
