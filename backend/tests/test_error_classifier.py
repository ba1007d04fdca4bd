"""Unit tests for completion failure classification."""

from __future__ import annotations

import unittest

from app.completion.error_classifier import (
    ProviderErrorKind,
    classify_provider_error,
    format_error_message,
)


class ProviderErrorClassificationTests(unittest.TestCase):
    def test_status_codes_map_to_kinds(self) -> None:
        cases = [
            (401, "Completion API error: 401 - no auth", ProviderErrorKind.AUTHENTICATION, False),
            (403, "Completion API error: 403 - forbidden", ProviderErrorKind.AUTHENTICATION, False),
            (429, "Completion API error: 429 - slow down", ProviderErrorKind.RATE_LIMIT, True),
            (408, "Completion API error: 408 - request took too long", ProviderErrorKind.TIMEOUT, True),
            (404, "Completion API error: 404 - missing", ProviderErrorKind.MODEL_NOT_FOUND, False),
            (503, "Completion API error: 503 - try later", ProviderErrorKind.MODEL_UNAVAILABLE, True),
            (400, "Completion API error: 400 - bad parameter", ProviderErrorKind.INVALID_REQUEST, False),
            (502, "Completion API error: 502 - bad gateway", ProviderErrorKind.SERVER_ERROR, True),
        ]
        for status_code, message, kind, retryable in cases:
            with self.subTest(status_code=status_code):
                classification = classify_provider_error(message, status_code)
                self.assertEqual(classification.kind, kind)
                self.assertEqual(classification.retryable, retryable)
                self.assertTrue(classification.guidance)

    def test_messages_without_status_are_classified_by_text(self) -> None:
        cases = [
            ("Completion request timed out after 120s", ProviderErrorKind.TIMEOUT),
            ("Rate limit exceeded for this key", ProviderErrorKind.RATE_LIMIT),
            ("Invalid API key provided", ProviderErrorKind.AUTHENTICATION),
            ("foo/bar is not a valid model ID", ProviderErrorKind.INVALID_MODEL_NAME),
            ("No endpoints found for foo/bar", ProviderErrorKind.MODEL_NOT_FOUND),
            ("The model is currently overloaded", ProviderErrorKind.MODEL_UNAVAILABLE),
            ("Network connection failed: [Errno 111] refused", ProviderErrorKind.NETWORK_ERROR),
            ("Completion API returned a non-JSON body", ProviderErrorKind.UNKNOWN),
        ]
        for message, kind in cases:
            with self.subTest(message=message):
                self.assertEqual(classify_provider_error(message).kind, kind)

    def test_first_matching_rule_wins(self) -> None:
        # A 400 naming an invalid model is more specific than a generic bad request.
        classification = classify_provider_error("Completion API error: 400 - invalid model id", 400)

        self.assertEqual(classification.kind, ProviderErrorKind.INVALID_MODEL_NAME)

    def test_unknown_failures_are_not_retryable(self) -> None:
        classification = classify_provider_error("something odd happened")

        self.assertEqual(classification.kind, ProviderErrorKind.UNKNOWN)
        self.assertFalse(classification.retryable)
        self.assertEqual(len(classification.guidance), 2)

    def test_format_error_message_prefixes_kind_label(self) -> None:
        classification = classify_provider_error("slow down", 429)

        self.assertEqual(format_error_message(classification, "slow down"), "[Rate Limit] slow down")


if __name__ == "__main__":
    unittest.main()
