"""
Tests for operation-based access control, login and lockout.
"""

import pytest
from django.core import mail
from django.core.exceptions import ValidationError

from apps.accounts.models import Role, is_operation_permitted, operation_matches, resolve_operations
from apps.accounts.permissions import users_with_operation
from apps.accounts.services import normalize_emails, resolve_users, set_user_roles


class TestOperationMatching:

    def test_exact_match(self):
        assert operation_matches('meeting:use', 'meeting:use')
        assert not operation_matches('meeting:use', 'meeting:admin')

    def test_wildcard_suffix(self):
        assert operation_matches('conference:*', 'conference:application:create')
        assert not operation_matches('conference:*', 'phd:drc:proposal')

    def test_wildcard_in_the_middle(self):
        assert operation_matches('handout:*:review', 'handout:dca:review')
        assert not operation_matches('handout:*:review', 'handout:dca:submit')

    def test_disallowed_wins_over_allowed(self):
        operations = {'allowed': ['conference:*'], 'disallowed': ['conference:application:hod']}
        assert is_operation_permitted(operations, 'conference:application:create')
        assert not is_operation_permitted(operations, 'conference:application:hod')

    def test_star_allows_everything(self):
        assert is_operation_permitted({'allowed': ['*'], 'disallowed': []}, 'anything:at:all')

    def test_resolve_drops_disallowed_covered_by_another_role(self):
        faculty = Role(name='faculty', allowed=['conference:application:create'], disallowed=[])
        restricted = Role(name='restricted', allowed=[], disallowed=['conference:application:create'])
        merged = resolve_operations([faculty, restricted])
        assert merged['disallowed'] == []
        assert merged['allowed'] == ['conference:application:create']

    def test_resolve_keeps_exception_within_same_role(self):
        role = Role(name='member', allowed=['conference:*'], disallowed=['conference:application:hod'])
        merged = resolve_operations([role])
        assert merged['disallowed'] == ['conference:application:hod']
        assert not is_operation_permitted(merged, 'conference:application:hod')
        assert is_operation_permitted(merged, 'conference:application:create')

    def test_resolve_checks_disallowed_against_earlier_roles_only(self):
        limited = Role(name='limited', allowed=[], disallowed=['meeting:use'])
        meetings = Role(name='meetings', allowed=['meeting:*'], disallowed=[])
        merged = resolve_operations([limited, meetings])
        assert merged['disallowed'] == ['meeting:use']


@pytest.mark.django_db
class TestUserOperations:

    def test_has_operation_from_role(self, make_user):
        user = make_user(None, 'meeting:use')
        assert user.has_operation('meeting:use')
        assert not user.has_operation('phd:drc:proposal')

    def test_inactive_user_has_no_operations(self, make_user):
        user = make_user(None, '*')
        user.is_active = False
        assert not user.has_operation('meeting:use')

    def test_role_exception_blocks_operation(self, make_user):
        user = make_user()
        role = Role.objects.create(
            name='member-not-hod', allowed=['conference:*'], disallowed=['conference:application:hod'],
        )
        user.roles.add(role)
        user.clear_operations_cache()
        assert user.has_operation('conference:application:create')
        assert not user.has_operation('conference:application:hod')

    def test_users_with_operation(self, make_user):
        convener = make_user('convener@uni.edu', 'handout:dca-convenor:*')
        make_user('plain@uni.edu')
        emails = [u.email for u in users_with_operation('handout:dca-convenor:final-decision')]
        assert emails == [convener.email]

    def test_set_user_roles(self, make_user):
        Role.objects.create(name='drc', allowed=['phd:drc:proposal'])
        user = make_user()
        set_user_roles(user, ['drc'])
        assert user.has_operation('phd:drc:proposal')

        with pytest.raises(ValidationError):
            set_user_roles(user, ['missing'])


@pytest.mark.django_db
class TestResolveUsers:

    def test_normalizes_and_keeps_order(self):
        assert normalize_emails([' B@uni.edu', 'a@uni.edu', 'b@uni.edu']) == ['b@uni.edu', 'a@uni.edu']

    def test_unknown_email_raises(self, make_user):
        make_user('known@uni.edu')
        with pytest.raises(ValidationError, match='ghost@uni.edu'):
            resolve_users(['known@uni.edu', 'ghost@uni.edu'])

    def test_operation_required(self, make_user):
        make_user('reviewer@uni.edu', 'handout:dca:review')
        make_user('other@uni.edu')
        assert [u.email for u in resolve_users(['REVIEWER@uni.edu'], 'handout:dca:review')] == ['reviewer@uni.edu']
        with pytest.raises(ValidationError):
            resolve_users(['other@uni.edu'], 'handout:dca:review')


@pytest.mark.django_db
class TestAuthViews:

    def test_login_and_me(self, make_user, client_for):
        make_user('faculty@uni.edu', 'meeting:use')
        client = client_for()

        response = client.post_json('/api/auth/login/', {'email': 'Faculty@uni.edu', 'password': 'Secret-pass-123'})
        assert response.status_code == 200
        assert response.json()['user']['email'] == 'faculty@uni.edu'

        me = client.get('/api/auth/me/').json()
        assert me['user']['operations']['allowed'] == ['meeting:use']

    def test_wrong_password(self, make_user, client_for):
        make_user('faculty@uni.edu')
        response = client_for().post_json('/api/auth/login/', {'email': 'faculty@uni.edu', 'password': 'nope'})
        assert response.status_code == 400
        assert response.json()['success'] is False

    def test_lockout_after_threshold(self, make_user, client_for, settings):
        settings.LOCKOUT_THRESHOLD = 2
        user = make_user('faculty@uni.edu')
        client = client_for()

        for _ in range(2):
            client.post_json('/api/auth/login/', {'email': 'faculty@uni.edu', 'password': 'nope'})

        user.refresh_from_db()
        assert user.is_locked()
        assert len(mail.outbox) == 1
        assert 'Locked' in mail.outbox[0].subject

        response = client.post_json('/api/auth/login/', {'email': 'faculty@uni.edu', 'password': 'Secret-pass-123'})
        assert response.status_code == 423

    def test_anonymous_gets_401(self, client_for):
        assert client_for().get('/api/auth/me/').status_code == 401

    def test_wrong_method_gets_405(self, make_user, client_for):
        client = client_for(make_user())
        response = client.get('/api/auth/logout/')
        assert response.status_code == 405
        assert response['Allow'] == 'POST'

    def test_user_directory_filtered_by_operation(self, make_user, client_for):
        make_user('reviewer@uni.edu', 'handout:dca:review')
        make_user('other@uni.edu')
        client = client_for(make_user())

        users = client.get('/api/auth/users/', {'operation': 'handout:dca:review'}).json()['users']
        assert [u['email'] for u in users] == ['reviewer@uni.edu']
