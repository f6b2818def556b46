"""
Error taxonomy for the contact form pipeline.

Every stage signals failure by raising one of these exceptions. The pipeline
catches them at the outermost level and turns them into responses with
``to_response()``, so each class owns its status code and public message.

Kinds:
    ProtocolError       -> MethodNotAllowedError                     (405)
    ValidationError     -> InvalidJsonError, MissingFieldsError      (400)
    RateLimitError      -> RateLimitExceededError                    (429)
    VerificationError   -> VerificationFailedError,
                           SuspiciousActivityError                   (403)
    ConfigurationError                                               (500)
    DeliveryError       -> SmtpConnectionError, SmtpSendError        (500)
"""

import traceback
from typing import Dict, Optional, Sequence

from .models import ApiResponse, RateLimitDecision


class ContactFormError(Exception):
    """
    Base class for all pipeline errors.

    Attributes:
        status_code: HTTP status of the response
        public_message: Stable, user-facing ``error`` value
        expose_details: Whether ``details`` may be included in the response
        details: Short diagnostic string (optional)
    """
    status_code = 500
    public_message = 'internal error'
    expose_details = False

    def __init__(self, details: Optional[str] = None):
        super().__init__(details or self.public_message)
        self.details = details

    def response_headers(self) -> Dict[str, str]:
        return {}

    def response_body(self) -> Dict[str, object]:
        body = {'error': self.public_message}
        if self.expose_details and self.details:
            body['details'] = self.details
        return body

    def to_response(self, debug: bool = False) -> ApiResponse:
        """
        Convert to an ApiResponse.

        Args:
            debug: Include the formatted traceback for server errors
                   (development deployments only)
        """
        body = self.response_body()
        if debug and self.status_code >= 500:
            body['stack'] = ''.join(
                traceback.format_exception(type(self), self, self.__traceback__)
            )
        return ApiResponse(self.status_code, body, self.response_headers())


# ============================================================================
# Protocol / validation errors
# ============================================================================

class ProtocolError(ContactFormError):
    """Raised when the request uses an unsupported HTTP method."""
    status_code = 405
    public_message = 'Method not allowed'


class MethodNotAllowedError(ProtocolError):
    pass


class ValidationError(ContactFormError):
    """Raised when the request body cannot be turned into a Submission."""
    status_code = 400


class InvalidJsonError(ValidationError):
    public_message = 'invalid JSON'


class MissingFieldsError(ValidationError):
    public_message = 'all fields required'

    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(f"Missing fields: {', '.join(self.missing)}")


# ============================================================================
# Rate limiting
# ============================================================================

class RateLimitError(ContactFormError):
    status_code = 429
    public_message = 'Too many requests. Please try again later.'


class RateLimitExceededError(RateLimitError):
    """Raised when a client identifier used up its admissions for the window."""

    def __init__(self, decision: RateLimitDecision, limit: int):
        self.decision = decision
        self.limit = limit
        super().__init__(f"Rate limit exceeded, resets at {decision.reset_time_iso}")

    def response_headers(self) -> Dict[str, str]:
        return {
            'X-RateLimit-Limit': str(self.limit),
            'X-RateLimit-Remaining': '0',
            'X-RateLimit-Reset': self.decision.reset_time_iso,
        }

    def response_body(self) -> Dict[str, object]:
        return {
            'error': self.public_message,
            'resetTime': self.decision.reset_time_iso,
        }


# ============================================================================
# Bot-score verification
# ============================================================================

class VerificationError(ContactFormError):
    status_code = 403


class VerificationFailedError(VerificationError):
    """The verification service rejected the token (or it was missing)."""
    public_message = 'verification failed'


class SuspiciousActivityError(VerificationError):
    """The token was valid but its score is below the threshold."""
    public_message = 'suspicious activity detected'

    def __init__(self, score: float, threshold: float):
        self.score = score
        self.threshold = threshold
        super().__init__(f"Score {score} below threshold {threshold}")


# ============================================================================
# Configuration / delivery
# ============================================================================

class ConfigurationError(ContactFormError):
    """Raised when required deployment settings are missing or invalid."""
    public_message = 'server misconfigured'
    expose_details = True

    def __init__(self, missing: Sequence[str], details: Optional[str] = None):
        self.missing = list(missing)
        super().__init__(details or f"Missing configuration: {', '.join(self.missing)}")


class DeliveryError(ContactFormError):
    """Raised when the mail relay could not deliver both messages."""
    public_message = 'internal error'
    expose_details = True


class SmtpConnectionError(DeliveryError):
    """Connecting, negotiating TLS or authenticating against the relay failed."""
    pass


class SmtpSendError(DeliveryError):
    """Sending one of the two messages failed."""

    def __init__(self, which: str, details: str):
        self.which = which
        super().__init__(f"Failed to send {which} email: {details}")
