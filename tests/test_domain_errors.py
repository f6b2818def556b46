"""
Tests for the error taxonomy and its response conversion.
"""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain.errors import (
    ConfigurationError,
    DeliveryError,
    InvalidJsonError,
    MethodNotAllowedError,
    MissingFieldsError,
    RateLimitExceededError,
    SmtpConnectionError,
    SmtpSendError,
    SuspiciousActivityError,
    VerificationFailedError,
)
from domain.models import RateLimitDecision


class TestStatusCodes:
    """Each kind maps to its documented status and message."""

    @pytest.mark.parametrize('error, status, message', [
        (MethodNotAllowedError(), 405, 'Method not allowed'),
        (InvalidJsonError(), 400, 'invalid JSON'),
        (MissingFieldsError(['name']), 400, 'all fields required'),
        (VerificationFailedError('token missing'), 403, 'verification failed'),
        (SuspiciousActivityError(0.1, 0.5), 403, 'suspicious activity detected'),
        (ConfigurationError(['SMTP_HOST']), 500, 'server misconfigured'),
        (SmtpConnectionError('refused'), 500, 'internal error'),
    ])
    def test_response_status_and_error(self, error, status, message):
        response = error.to_response()

        assert response.status_code == status
        assert response.body['error'] == message


class TestDetails:
    """Only server-side errors may expose a short details string."""

    def test_client_errors_hide_details(self):
        response = VerificationFailedError('invalid-input-secret').to_response()

        assert response.body == {'error': 'verification failed'}

    def test_configuration_error_names_missing_keys(self):
        error = ConfigurationError(['SMTP_HOST', 'TO_EMAIL'])

        assert error.missing == ['SMTP_HOST', 'TO_EMAIL']
        assert error.to_response().body == {
            'error': 'server misconfigured',
            'details': 'Missing configuration: SMTP_HOST, TO_EMAIL',
        }

    def test_send_error_names_failed_message(self):
        error = SmtpSendError('confirmation', 'mailbox unavailable')

        assert isinstance(error, DeliveryError)
        assert error.which == 'confirmation'
        assert error.to_response().body['details'] == (
            'Failed to send confirmation email: mailbox unavailable'
        )

    def test_stack_only_in_debug(self):
        try:
            raise SmtpConnectionError('refused')
        except SmtpConnectionError as e:
            error = e

        assert 'stack' not in error.to_response().body
        assert 'SmtpConnectionError' in error.to_response(debug=True).body['stack']

    def test_debug_never_adds_stack_to_client_errors(self):
        assert 'stack' not in InvalidJsonError().to_response(debug=True).body


class TestRateLimitExceeded:
    """Rate limit errors carry reset time in body and headers."""

    def test_headers_and_body(self):
        decision = RateLimitDecision(allowed=False, remaining=0, reset_time=3_600_000)

        response = RateLimitExceededError(decision, limit=5).to_response()

        assert response.status_code == 429
        assert response.body == {
            'error': 'Too many requests. Please try again later.',
            'resetTime': '1970-01-01T01:00:00.000Z',
        }
        assert response.headers == {
            'X-RateLimit-Limit': '5',
            'X-RateLimit-Remaining': '0',
            'X-RateLimit-Reset': '1970-01-01T01:00:00.000Z',
        }


class TestMissingFields:

    def test_lists_fields(self):
        error = MissingFieldsError(['subject', 'message'])

        assert error.missing == ['subject', 'message']
        assert 'subject, message' in str(error)
