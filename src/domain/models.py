"""
Data models for the contact form domain.

These type-safe data structures define clear contracts between the pipeline
stages. None of them outlive a single request except the timestamps held by
the rate limiter.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type',
    'Access-Control-Allow-Methods': 'POST, OPTIONS',
}


def format_timestamp_ms(timestamp_ms: int) -> str:
    """
    Format epoch milliseconds as ISO 8601 UTC with millisecond precision.

    Example:
        >>> format_timestamp_ms(0)
        '1970-01-01T00:00:00.000Z'
    """
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass(frozen=True)
class Submission:
    """
    A validated contact form submission.

    Attributes:
        name: Sender's name
        email: Sender's email address (used as Reply-To on the notification)
        subject: Subject entered by the sender
        message: Free-form message body, may contain newlines
    """
    name: str
    email: str
    subject: str
    message: str

    @property
    def preview(self) -> str:
        """Short log-safe description (never includes the message body)."""
        return f"from={self.email}, subject={self.subject!r}, message_length={len(self.message)}"


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request was admitted (and recorded)
        remaining: Admissions left in the current window
        reset_time: Epoch milliseconds when the next admission becomes possible
    """
    allowed: bool
    remaining: int
    reset_time: int

    @property
    def reset_time_iso(self) -> str:
        return format_timestamp_ms(self.reset_time)


@dataclass(frozen=True)
class VerificationResult:
    """
    Result of a bot-score verification.

    Attributes:
        success: Whether the verification service accepted the token
        score: Human-likelihood score between 0.0 and 1.0 (None if not reported)
        error: Reason for failure (None on success)
    """
    success: bool
    score: Optional[float] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class MailMessage:
    """
    An outgoing HTML email, before conversion to a MIME message.
    """
    from_address: str
    to_address: str
    subject: str
    html: str
    reply_to: Optional[str] = None


@dataclass(frozen=True)
class DeliveryReceipt:
    """
    Result of a successful delivery (notification + confirmation).

    Attributes:
        message_id: Message-ID of the notification sent to the operator
    """
    message_id: str


@dataclass
class ApiResponse:
    """
    HTTP-shaped response returned by the pipeline.

    Attributes:
        status_code: HTTP status code
        body: JSON-serializable body, or None for an empty body
        headers: Extra headers (CORS headers are always added)
    """
    status_code: int
    body: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def to_lambda(self) -> Dict[str, Any]:
        """
        Convert to the API Gateway proxy integration response format.

        Returns:
            Dict with statusCode, headers and a string body
        """
        headers = dict(CORS_HEADERS)
        if self.body is not None:
            headers['Content-Type'] = 'application/json'
        headers.update(self.headers)

        return {
            'statusCode': self.status_code,
            'headers': headers,
            'body': json.dumps(self.body) if self.body is not None else '',
        }

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if self.body and 'error' in self.body:
            return f"ApiResponse(status={self.status_code}, error={self.body['error']!r})"
        return f"ApiResponse(status={self.status_code})"
