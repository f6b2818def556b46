"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
import pytest

# Add src and hooks to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../hooks'))

# Set up test environment variables before importing any modules
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_LEVEL', 'INFO')

CONFIG_VARIABLES = (
    'SMTP_HOST', 'SMTP_PORT', 'SMTP_USER', 'SMTP_PASS', 'FROM_EMAIL', 'TO_EMAIL',
    'SMTP_TIMEOUT', 'RECAPTCHA_SECRET_KEY', 'RECAPTCHA_MIN_SCORE', 'RECAPTCHA_VERIFY_URL',
    'RECAPTCHA_TIMEOUT', 'SITE_URL',
)

MAIL_ENV = {
    'SMTP_HOST': 'smtp.example.com',
    'SMTP_PORT': '465',
    'SMTP_USER': 'mailer@example.com',
    'SMTP_PASS': 'app-password',
    'FROM_EMAIL': 'noreply@example.com',
    'TO_EMAIL': 'owner@example.com',
}


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Start every test without mail or reCAPTCHA settings from the host."""
    for name in CONFIG_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def mail_env(monkeypatch):
    """All six required mail settings present."""
    for key, value in MAIL_ENV.items():
        monkeypatch.setenv(key, value)
    return dict(MAIL_ENV)


@pytest.fixture
def submission_data():
    return {
        'name': 'Ada Lovelace',
        'email': 'ada@example.org',
        'subject': 'Analytical engine',
        'message': 'Hello!\nI have a question about your work.',
    }
