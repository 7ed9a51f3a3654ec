"""
Django test settings for the IMS portal.

Used by pytest-django (see [tool.pytest.ini_options] in pyproject.toml).
"""

import tempfile

from .base import *

DEBUG = False

ALLOWED_HOSTS = ['testserver', 'localhost']

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# Fast hashing for test users
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

MEDIA_ROOT = tempfile.mkdtemp(prefix='ims-test-media-')

FRONTEND_URL = 'http://portal.test'

# Run queued functions inline instead of through the cluster
Q_CLUSTER = {**Q_CLUSTER, 'sync': True}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'root': {
        'handlers': ['null'],
        'level': 'WARNING',
    },
}
