"""
Email template management.

This module loads HTML email templates with the following priority:
1. S3 override (optional, for copy changes without redeploy)
2. Local filesystem (templates/ directory packaged with Lambda)

Templates are cached in memory for warm Lambda invocations with TTL and
rendered with Jinja2 (autoescaping on, so submitted values cannot inject
markup).
"""

import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from jinja2 import Environment
from markupsafe import Markup, escape

logger = logging.getLogger(__name__)

# Cache TTL in seconds (default: 5 minutes)
CACHE_TTL_SECONDS = int(os.environ.get('TEMPLATE_CACHE_TTL', '300'))

# Module-level cache: {cache_key: (template_source, timestamp)}
_template_cache: Dict[str, Tuple[str, float]] = {}

# Configure S3 client with timeouts to prevent infinite hangs
s3_config = Config(
    retries={
        'max_attempts': 1,  # 1 attempt total (no retries)
        'mode': 'standard'
    },
    connect_timeout=5,
    read_timeout=10
)

# Initialize S3 client at module level (reused across invocations)
s3_client = boto3.client('s3', config=s3_config)

# Configuration from environment variables
TEMPLATE_BUCKET = os.environ.get('TEMPLATE_BUCKET')
TEMPLATE_KEY_PREFIX = os.environ.get('TEMPLATE_KEY_PREFIX', 'templates/')

# src/services/templates.py -> src/templates/
# In Lambda: /var/task/templates/
TEMPLATES_DIR = Path(__file__).parent.parent / 'templates'


class TemplateNotFoundError(ValueError):
    """Raised when a template exists neither in S3 nor on the filesystem."""
    pass


def nl2br(value: Any) -> Markup:
    """Escape ``value`` and turn its line breaks into ``<br>`` tags."""
    text = str(value).replace('\r\n', '\n').replace('\r', '\n')
    return Markup('<br>\n').join(escape(line) for line in text.split('\n'))


_environment = Environment(autoescape=True, keep_trailing_newline=True)
_environment.filters['nl2br'] = nl2br


def _load_from_filesystem(template_name: str) -> str:
    """
    Load template from local filesystem.

    Raises:
        FileNotFoundError: If template file doesn't exist
    """
    template_path = TEMPLATES_DIR / template_name
    logger.debug(f"Loading template from filesystem: {template_path}")

    with open(template_path, 'r', encoding='utf-8') as f:
        return f.read()


def _load_from_s3(template_name: str) -> str:
    """
    Load template from S3 (optional override).

    Raises:
        ValueError: If TEMPLATE_BUCKET not set
        ClientError: If the object cannot be fetched
    """
    if not TEMPLATE_BUCKET:
        raise ValueError("TEMPLATE_BUCKET environment variable not set")

    s3_key = f"{TEMPLATE_KEY_PREFIX}{template_name}"
    logger.info(f"Loading template from S3: s3://{TEMPLATE_BUCKET}/{s3_key}")

    response = s3_client.get_object(Bucket=TEMPLATE_BUCKET, Key=s3_key)
    return response['Body'].read().decode('utf-8')


def load_template(template_name: str, use_cache: bool = True) -> str:
    """
    Load template source with caching and fallback.

    Priority: Cache -> S3 override -> Local filesystem

    Args:
        template_name: Template file name (e.g., "notification.html")
        use_cache: Use cached version if available (default: True)

    Returns:
        str: Template source

    Raises:
        TemplateNotFoundError: If template not found anywhere
    """
    cache_key = f"template:{template_name}"
    current_time = time.time()

    if use_cache and cache_key in _template_cache:
        cached_source, cached_time = _template_cache[cache_key]
        if current_time - cached_time < CACHE_TTL_SECONDS:
            return cached_source
        logger.info(f"Cache expired for template: {template_name}, reloading...")

    source = None

    if TEMPLATE_BUCKET:
        try:
            source = _load_from_s3(template_name)
        except (BotoCoreError, ClientError, ValueError) as e:
            logger.info(
                f"S3 template override not available ({e.__class__.__name__}), "
                f"falling back to local filesystem"
            )

    if source is None:
        try:
            source = _load_from_filesystem(template_name)
        except FileNotFoundError:
            logger.error(
                f"Template not found: {template_name}. "
                f"Expected location: {TEMPLATES_DIR / template_name}"
            )
            raise TemplateNotFoundError(
                f"Template '{template_name}' not found in S3 or local filesystem"
            )

    _template_cache[cache_key] = (source, current_time)
    return source


def render_template(template_name: str, **context: Any) -> str:
    """
    Render a template with autoescaping.

    Example:
        >>> html = render_template("confirmation.html", name="Ada", site_url=None)
    """
    template = _environment.from_string(load_template(template_name))
    return template.render(**context)


def clear_cache() -> None:
    """Clear the template cache."""
    _template_cache.clear()
    logger.info("Template cache cleared")
