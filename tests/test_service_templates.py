"""
Tests for email template management service.
"""

import pytest
from unittest.mock import patch, MagicMock, mock_open
from botocore.exceptions import ClientError
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from services import templates


@pytest.fixture(autouse=True)
def empty_cache():
    templates.clear_cache()
    yield
    templates.clear_cache()


class TestLoadFromFilesystem:
    """Test loading templates from local filesystem."""

    @patch('builtins.open', new_callable=mock_open, read_data='<p>{{ name }}</p>')
    def test_load_from_filesystem_success(self, mock_file):
        result = templates._load_from_filesystem('notification.html')

        assert result == '<p>{{ name }}</p>'

    @patch('builtins.open', side_effect=FileNotFoundError("File not found"))
    def test_load_from_filesystem_not_found(self, mock_file):
        with pytest.raises(FileNotFoundError):
            templates._load_from_filesystem('missing.html')

    def test_packaged_templates_exist(self):
        assert (templates.TEMPLATES_DIR / 'notification.html').is_file()
        assert (templates.TEMPLATES_DIR / 'confirmation.html').is_file()


class TestLoadFromS3:
    """Test loading template overrides from S3."""

    @patch('services.templates.TEMPLATE_BUCKET', 'site-assets')
    @patch('services.templates.TEMPLATE_KEY_PREFIX', 'templates/')
    @patch('services.templates.s3_client')
    def test_load_from_s3_success(self, mock_s3):
        mock_s3.get_object.return_value = {
            'Body': MagicMock(read=lambda: b'<p>From S3</p>')
        }

        result = templates._load_from_s3('notification.html')

        assert result == '<p>From S3</p>'
        mock_s3.get_object.assert_called_once_with(
            Bucket='site-assets',
            Key='templates/notification.html'
        )

    @patch('services.templates.TEMPLATE_BUCKET', None)
    def test_load_from_s3_no_bucket(self):
        with pytest.raises(ValueError, match="TEMPLATE_BUCKET environment variable not set"):
            templates._load_from_s3('notification.html')


class TestLoadTemplate:
    """Test load_template priority, fallback and caching."""

    @patch('services.templates.TEMPLATE_BUCKET', 'site-assets')
    @patch('services.templates._load_from_s3')
    @patch('services.templates._load_from_filesystem')
    def test_s3_override_wins(self, mock_fs, mock_s3):
        mock_s3.return_value = 'S3 template'

        assert templates.load_template('notification.html') == 'S3 template'
        mock_fs.assert_not_called()

    @patch('services.templates.TEMPLATE_BUCKET', 'site-assets')
    @patch('services.templates._load_from_s3')
    @patch('services.templates._load_from_filesystem')
    def test_fallback_to_filesystem_on_s3_error(self, mock_fs, mock_s3):
        mock_s3.side_effect = ClientError(
            {'Error': {'Code': 'NoSuchKey', 'Message': 'Not found'}},
            'GetObject'
        )
        mock_fs.return_value = 'Packaged template'

        assert templates.load_template('notification.html') == 'Packaged template'
        mock_fs.assert_called_once_with('notification.html')

    @patch('services.templates.TEMPLATE_BUCKET', None)
    @patch('services.templates._load_from_s3')
    @patch('services.templates._load_from_filesystem')
    def test_no_bucket_skips_s3(self, mock_fs, mock_s3):
        mock_fs.return_value = 'Packaged template'

        templates.load_template('notification.html')

        mock_s3.assert_not_called()

    @patch('services.templates.TEMPLATE_BUCKET', None)
    @patch('services.templates._load_from_filesystem')
    def test_not_found_anywhere(self, mock_fs):
        mock_fs.side_effect = FileNotFoundError("Not found")

        with pytest.raises(templates.TemplateNotFoundError, match="'missing.html' not found"):
            templates.load_template('missing.html')

    @patch('services.templates.TEMPLATE_BUCKET', None)
    @patch('services.templates._load_from_filesystem')
    def test_cache_hit_within_ttl(self, mock_fs):
        mock_fs.return_value = 'Cached'

        templates.load_template('a.html')
        templates.load_template('a.html')

        assert mock_fs.call_count == 1

    @patch('services.templates.CACHE_TTL_SECONDS', 5)
    @patch('services.templates.TEMPLATE_BUCKET', None)
    @patch('services.templates._load_from_filesystem')
    @patch('services.templates.time.time')
    def test_cache_expired_after_ttl(self, mock_time, mock_fs):
        mock_fs.side_effect = ['First', 'Second']

        mock_time.return_value = 0
        assert templates.load_template('a.html') == 'First'
        mock_time.return_value = 3
        assert templates.load_template('a.html') == 'First'
        mock_time.return_value = 6
        assert templates.load_template('a.html') == 'Second'

    @patch('services.templates.TEMPLATE_BUCKET', None)
    @patch('services.templates._load_from_filesystem')
    def test_cache_bypass(self, mock_fs):
        mock_fs.side_effect = ['First', 'Second']

        templates.load_template('a.html')

        assert templates.load_template('a.html', use_cache=False) == 'Second'


class TestRenderTemplate:
    """Test rendering with autoescaping and line breaks."""

    @patch('services.templates.load_template', return_value='<p>{{ name }}</p>')
    def test_values_are_escaped(self, mock_load):
        html = templates.render_template('x.html', name='<script>alert(1)</script>')

        assert '<script>' not in html
        assert '&lt;script&gt;' in html

    @patch('services.templates.load_template', return_value='<p>{{ message | nl2br }}</p>')
    def test_nl2br(self, mock_load):
        html = templates.render_template('x.html', message='line one\nline <two>\r\nthree')

        assert html == '<p>line one<br>\nline &lt;two&gt;<br>\nthree</p>'

    def test_notification_template_contains_all_fields_in_order(self):
        html = templates.render_template(
            'notification.html',
            name='Ada Lovelace',
            email='ada@example.org',
            subject='Analytical engine',
            message='first line\nsecond line',
        )

        positions = [
            html.index('Ada Lovelace'),
            html.index('ada@example.org'),
            html.index('Analytical engine'),
            html.index('first line'),
        ]
        assert positions == sorted(positions)
        assert 'first line<br>\nsecond line' in html

    def test_confirmation_template_without_site_url(self):
        html = templates.render_template('confirmation.html', name='Ada', site_url=None)

        assert 'Hi Ada!' in html
        assert 'Visit Website' not in html

    def test_confirmation_template_with_site_url(self):
        html = templates.render_template(
            'confirmation.html', name='Ada', site_url='https://example.org'
        )

        assert 'href="https://example.org"' in html
