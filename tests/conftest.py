"""
Shared fixtures: users with roles and logged-in JSON clients.
"""

import json
from itertools import count

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import Client

from apps.accounts.models import Role, User

_sequence = count(1)


@pytest.fixture
def make_user(db):
    """
    Factory creating an active user whose role grants the given operations.

    Usage:
        convener = make_user('convener@uni.edu', 'conference:application:convener')
    """
    def factory(email=None, *operations, **fields):
        n = next(_sequence)
        user = User.objects.create_user(
            email=email or f'user{n}@uni.edu',
            password='Secret-pass-123',
            first_name=fields.pop('first_name', f'First{n}'),
            last_name=fields.pop('last_name', f'Last{n}'),
            **fields,
        )
        if operations:
            role = Role.objects.create(name=f'role-{n}', allowed=list(operations))
            user.roles.add(role)
            user.clear_operations_cache()
        return user
    return factory


class JsonClient(Client):
    """Test client that sends JSON bodies and decodes JSON answers."""

    def post_json(self, path, data=None, **extra):
        return self.post(path, json.dumps(data or {}), content_type='application/json', **extra)


@pytest.fixture
def client_for():
    def factory(user=None):
        client = JsonClient()
        if user is not None:
            client.force_login(user)
        return client
    return factory


@pytest.fixture
def pdf_file():
    def factory(name='document.pdf'):
        return SimpleUploadedFile(name, b'%PDF-1.4 test', content_type='application/pdf')
    return factory
