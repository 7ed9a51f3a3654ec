"""
Tests for upload validation and per-environment settings.
"""

import importlib

import pytest
from django.conf import settings as django_settings
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile

from apps.core.validators import validate_pdf


class TestValidatePdf:

    def test_accepts_pdf(self, pdf_file):
        validate_pdf(pdf_file('paper.PDF'))

    def test_rejects_other_extension(self):
        upload = SimpleUploadedFile('paper.docx', b'data')
        with pytest.raises(ValidationError, match="'.docx' is not allowed"):
            validate_pdf(upload)

    def test_extension_list_comes_from_settings(self, settings):
        settings.ALLOWED_UPLOAD_EXTENSIONS = ['.pdf', '.txt']
        validate_pdf(SimpleUploadedFile('notes.txt', b'data'))

    def test_rejects_oversized_file(self, settings, pdf_file):
        settings.MAX_UPLOAD_SIZE = 4
        with pytest.raises(ValidationError, match='cannot exceed'):
            validate_pdf(pdf_file())


class TestSettingsIsolation:

    def test_debug_toolbar_only_in_development(self):
        development = importlib.import_module('config.settings.development')
        base = importlib.import_module('config.settings.base')

        assert 'debug_toolbar' in development.INSTALLED_APPS
        assert development.MIDDLEWARE[0] == 'debug_toolbar.middleware.DebugToolbarMiddleware'
        assert 'debug_toolbar' not in base.INSTALLED_APPS
        assert not any('debug_toolbar' in m for m in base.MIDDLEWARE)

    def test_test_settings_run_without_debug_toolbar(self):
        assert 'debug_toolbar' not in django_settings.INSTALLED_APPS
        assert not any('debug_toolbar' in m for m in django_settings.MIDDLEWARE)
