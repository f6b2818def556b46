"""
Google reCAPTCHA v3 verification.

This module classifies a submission as human or not by posting the
client-supplied token to the reCAPTCHA ``siteverify`` endpoint.

Verification is optional infrastructure: when no secret is configured the
verifier is DISABLED and every token passes with score 1.0. When a secret is
configured, a missing token or any failure to reach the service is a
rejection.

Usage:
    from integrations.recaptcha import RecaptchaVerifier

    result = RecaptchaVerifier().verify(token)
    if result.success and (result.score is None or result.score >= 0.5):
        ...
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from domain.models import VerificationResult

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_URL = 'https://www.google.com/recaptcha/api/siteverify'
DEFAULT_TIMEOUT_SECONDS = 10.0


# ============================================================================
# Configuration
# ============================================================================

class VerificationMode(Enum):
    ENFORCED = 'enforced'
    DISABLED = 'disabled'


@dataclass(frozen=True)
class VerificationPolicy:
    """
    Whether tokens are checked, and with which secret.

    Attributes:
        mode: ENFORCED or DISABLED
        secret: reCAPTCHA secret key (None when DISABLED)
    """
    mode: VerificationMode
    secret: Optional[str] = None

    @classmethod
    def enforced(cls, secret: str) -> 'VerificationPolicy':
        if not secret:
            raise ValueError("An enforced verification policy needs a secret")
        return cls(VerificationMode.ENFORCED, secret)

    @classmethod
    def disabled(cls) -> 'VerificationPolicy':
        return cls(VerificationMode.DISABLED)

    @classmethod
    def from_env(cls) -> 'VerificationPolicy':
        """ENFORCED when RECAPTCHA_SECRET_KEY is set and non-empty, else DISABLED."""
        secret = os.environ.get('RECAPTCHA_SECRET_KEY')
        if secret:
            return cls.enforced(secret)
        return cls.disabled()

    @property
    def is_enforced(self) -> bool:
        return self.mode is VerificationMode.ENFORCED


# ============================================================================
# Verification
# ============================================================================

def _parse_score(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class RecaptchaVerifier:
    """
    Verifies reCAPTCHA tokens with a single call to the verification service.

    The score threshold is applied by the caller; this class only reports
    what the service said.
    """

    def __init__(
        self,
        policy: Optional[VerificationPolicy] = None,
        verify_url: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self._policy = policy
        self.verify_url = verify_url or os.environ.get('RECAPTCHA_VERIFY_URL', DEFAULT_VERIFY_URL)
        self.timeout = timeout if timeout is not None else float(
            os.environ.get('RECAPTCHA_TIMEOUT', DEFAULT_TIMEOUT_SECONDS)
        )

    @property
    def policy(self) -> VerificationPolicy:
        return self._policy if self._policy is not None else VerificationPolicy.from_env()

    def verify(self, token: Optional[str]) -> VerificationResult:
        """
        Verify a reCAPTCHA token.

        Args:
            token: Token produced by the client-side reCAPTCHA script (may be None)

        Returns:
            VerificationResult. Never raises: transport and parse failures
            are returned as ``success=False`` with the error message.
        """
        policy = self.policy

        if not policy.is_enforced:
            logger.warning("RECAPTCHA_SECRET_KEY not set - skipping verification")
            return VerificationResult(success=True, score=1.0)

        if not token:
            logger.info("reCAPTCHA token missing")
            return VerificationResult(success=False, error='token missing')

        try:
            data = self._call_verify_api(policy.secret, token)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"reCAPTCHA verification error: {e}")
            return VerificationResult(success=False, error=str(e))

        success = data.get('success') is True
        score = _parse_score(data.get('score'))
        logger.info(
            f"reCAPTCHA: success={success}, score={score}, action={data.get('action')}"
        )

        if not success:
            error_codes = data.get('error-codes') or []
            error = ', '.join(str(code) for code in error_codes) or 'verification rejected'
            return VerificationResult(success=False, score=score, error=error)

        return VerificationResult(success=True, score=score)

    def _call_verify_api(self, secret: str, token: str) -> dict:
        """
        POST the secret and token to the siteverify endpoint.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status
            ValueError: If the body is not a JSON object
        """
        response = httpx.post(
            self.verify_url,
            data={'secret': secret, 'response': token},
            timeout=self.timeout,
        )
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected verification response: {str(data)[:100]}")
        return data
