"""
AWS Lambda handler for contact form submissions (API Gateway proxy events).

Thin orchestration layer that delegates to ContactPipeline.
Policy: every request gets a JSON response with CORS headers; no retries.
"""

import json
import logging
import os
from typing import Any, Dict

from domain.contact_pipeline import ContactPipeline
from integrations.recaptcha import VerificationPolicy
from services.email import MailSettings

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())

# Add console handler for local testing (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    formatter = logging.Formatter('%(levelname)s - %(name)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

ENVIRONMENT = os.environ.get('ENVIRONMENT', 'production')

# Initialize pipeline once at module level (rate limit store survives warm invocations)
contact_pipeline = ContactPipeline()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Handle a contact form request.

    Expected event format (API Gateway REST proxy):
    {
        "httpMethod": "POST",
        "headers": {"X-Forwarded-For": "203.0.113.7"},
        "body": "{\"name\": \"...\", \"email\": \"...\", \"subject\": \"...\",
                  \"message\": \"...\", \"recaptchaToken\": \"...\"}"
    }

    Returns:
        Dict with statusCode, headers and body
    """
    request_id = getattr(context, 'aws_request_id', None) or getattr(context, 'request_id', 'local')
    logger.info(f"=== Contact form function start (request {request_id}, env {ENVIRONMENT}) ===")

    response = contact_pipeline.handle(event)

    logger.info(f"=== Contact form function end: {response!r} ===")
    return response.to_lambda()


def health_check(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Simple health check endpoint for monitoring.

    Reports configuration presence only; never contacts the mail relay or
    the verification service.
    """
    settings = MailSettings.from_env()
    missing = settings.missing_keys()
    missing += [key for key in settings.invalid if key not in missing]

    return {
        'statusCode': 200,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps({
            'status': 'healthy',
            'environment': ENVIRONMENT,
            'recaptchaEnabled': VerificationPolicy.from_env().is_enforced,
            'mailConfigured': settings.is_complete,
            'missingConfiguration': missing,
        })
    }
