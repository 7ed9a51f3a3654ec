"""
Forms for accounts app.

LoginForm validates the JSON login payload and authenticates through
EmailAuthBackend, surfacing lockout as its own error.
"""

from django import forms
from django.contrib.auth import get_user_model, authenticate
from django.core.exceptions import ValidationError

User = get_user_model()


class LoginForm(forms.Form):
    """Login form with email and password."""

    email = forms.EmailField(max_length=254)
    password = forms.CharField(strip=False)

    def __init__(self, data=None, request=None, **kwargs):
        self.request = request
        self.user_cache = None
        super().__init__(data, **kwargs)

    def clean_email(self):
        return self.cleaned_data.get('email', '').lower().strip()

    def clean(self):
        cleaned_data = super().clean()
        email = cleaned_data.get('email')
        password = cleaned_data.get('password')

        if email and password:
            # Check lockout before authenticating
            try:
                user = User.objects.get(email__iexact=email)
                if user.is_locked():
                    raise ValidationError(
                        'Account is temporarily locked due to too many failed login attempts. '
                        'Please try again later.',
                        code='locked',
                    )
            except User.DoesNotExist:
                pass

            self.user_cache = authenticate(self.request, username=email, password=password)
            if self.user_cache is None:
                raise ValidationError('Invalid email or password.', code='invalid_login')

        return cleaned_data

    def get_user(self):
        return self.user_cache
