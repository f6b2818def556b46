"""
Contact form request pipeline - core business logic.

This module handles one HTTP-shaped request end to end:
1. Method check (OPTIONS preflight, POST only)
2. Rate limiting per client identifier
3. Body parsing and validation
4. Bot-score verification
5. Mail configuration check
6. Delivery of notification + confirmation

Stages run strictly in this order and the first failure ends the request.
Every failure is raised as a ContactFormError and converted to a response in
``handle()``; no exception propagates out of the public method.
"""

import base64
import json
import logging
import os
import traceback
from typing import Any, Dict, Optional

from .errors import (
    ContactFormError,
    InvalidJsonError,
    MethodNotAllowedError,
    MissingFieldsError,
    RateLimitExceededError,
    SuspiciousActivityError,
    VerificationFailedError,
)
from .models import ApiResponse, Submission
from services.email import Notifier
from services.rate_limiter import UNKNOWN_CLIENT, SlidingWindowRateLimiter
from integrations.recaptcha import RecaptchaVerifier

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('name', 'email', 'subject', 'message')
DEFAULT_MIN_SCORE = 0.5


def client_identifier(headers: Dict[str, Any]) -> str:
    """
    Derive the rate limit key from request headers.

    The forwarded-for header is used verbatim, then the client-ip header,
    then the shared "unknown" bucket. Both headers are client-controllable
    unless a trusted proxy overwrites them.
    """
    return headers.get('x-forwarded-for') or headers.get('client-ip') or UNKNOWN_CLIENT


def parse_body(event: Dict[str, Any]) -> Any:
    """
    Decode the JSON body of a proxy event.

    Raises:
        InvalidJsonError: If the body is absent, not valid base64 (when
            flagged as encoded) or not valid JSON
    """
    raw = event.get('body')

    try:
        if event.get('isBase64Encoded') and raw is not None:
            raw = base64.b64decode(raw).decode('utf-8')
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidJsonError(f"Could not parse request body: {e}")


def validate_submission(data: Any) -> Submission:
    """
    Build a Submission from parsed JSON.

    All four fields must be non-empty strings. Anything other than a JSON
    object counts as every field missing.

    Raises:
        MissingFieldsError: Listing the missing fields
    """
    if not isinstance(data, dict):
        raise MissingFieldsError(REQUIRED_FIELDS)

    missing = [
        name for name in REQUIRED_FIELDS
        if not isinstance(data.get(name), str) or not data.get(name)
    ]
    if missing:
        raise MissingFieldsError(missing)

    return Submission(
        name=data['name'],
        email=data['email'],
        subject=data['subject'],
        message=data['message'],
    )


class ContactPipeline:
    """
    Orchestrates rate limiting, verification and delivery for one request.

    The rate limiter is the only state kept between requests; create the
    pipeline once per execution environment and reuse it.
    """

    def __init__(
        self,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        verifier: Optional[RecaptchaVerifier] = None,
        notifier: Optional[Notifier] = None,
        min_score: Optional[float] = None,
        debug: Optional[bool] = None
    ):
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self.verifier = verifier or RecaptchaVerifier()
        self.notifier = notifier or Notifier()
        self._min_score = min_score
        self._debug = debug

    @property
    def min_score(self) -> float:
        if self._min_score is not None:
            return self._min_score
        return float(os.environ.get('RECAPTCHA_MIN_SCORE', DEFAULT_MIN_SCORE))

    @property
    def debug(self) -> bool:
        """Development deployments include stack traces in 500 responses."""
        if self._debug is not None:
            return self._debug
        return os.environ.get('ENVIRONMENT', 'production') == 'development'

    def handle(self, event: Dict[str, Any]) -> ApiResponse:
        """
        Process a single API Gateway proxy event.

        Args:
            event: Proxy event (httpMethod, headers, body, isBase64Encoded)

        Returns:
            ApiResponse for every outcome, success or failure
        """
        method = self._http_method(event)
        logger.info(f"Contact form request: method={method}")

        try:
            if method == 'OPTIONS':
                return ApiResponse(200)
            if method != 'POST':
                raise MethodNotAllowedError(f"Unsupported method: {method}")

            return self._handle_post(event)

        except ContactFormError as e:
            if e.status_code >= 500:
                logger.error(f"{e.__class__.__name__}: {e}", exc_info=True)
            else:
                logger.warning(f"Request rejected ({e.status_code} {e.__class__.__name__}): {e}")
            return e.to_response(debug=self.debug)

        except Exception as e:
            logger.error(f"Unexpected error handling contact form: {e}", exc_info=True)
            body = {'error': 'internal error', 'details': str(e)}
            if self.debug:
                body['stack'] = traceback.format_exc()
            return ApiResponse(500, body)

    def _handle_post(self, event: Dict[str, Any]) -> ApiResponse:
        headers = self._headers(event)
        client_id = client_identifier(headers)

        decision = self.rate_limiter.check(client_id)
        if not decision.allowed:
            raise RateLimitExceededError(decision, self.rate_limiter.max_requests)
        logger.info(f"Admitted {client_id} ({decision.remaining} remaining)")

        data = parse_body(event)
        submission = validate_submission(data)
        logger.info(f"Valid submission: {submission.preview}")

        token = data.get('recaptchaToken')
        self._verify(token if isinstance(token, str) else None)

        self.notifier.check_configuration()

        receipt = self.notifier.deliver(submission)
        logger.info(f"Email sent: {receipt.message_id}")

        return ApiResponse(200, {
            'message': 'Email sent successfully',
            'success': True,
            'messageId': receipt.message_id,
        })

    def _verify(self, token: Optional[str]) -> None:
        """
        Raises:
            VerificationFailedError: If the service rejected the token
            SuspiciousActivityError: If the score is below the threshold
        """
        result = self.verifier.verify(token)

        if not result.success:
            raise VerificationFailedError(result.error)

        threshold = self.min_score
        if result.score is not None and result.score < threshold:
            raise SuspiciousActivityError(result.score, threshold)

    @staticmethod
    def _http_method(event: Dict[str, Any]) -> str:
        method = event.get('httpMethod')
        if not method:
            http = (event.get('requestContext') or {}).get('http') or {}
            method = http.get('method', '')
        return str(method).upper()

    @staticmethod
    def _headers(event: Dict[str, Any]) -> Dict[str, Any]:
        """Request headers with lower-cased names."""
        return {str(k).lower(): v for k, v in (event.get('headers') or {}).items()}
