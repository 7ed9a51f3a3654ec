"""
Admin configuration for accounts app.
User management with roles and lockout controls.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _

from .models import Role, User


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ('name', 'allowed', 'disallowed', 'user_count')
    search_fields = ('name',)

    def user_count(self, obj):
        return obj.users.count()
    user_count.short_description = 'Users'


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom User admin with email authentication and role management.
    """

    list_display = (
        'email', 'full_name_display', 'user_type', 'roles_display',
        'is_active', 'is_locked_display', 'created_at'
    )
    list_filter = ('user_type', 'roles', 'is_active', 'is_staff')
    search_fields = ('email', 'first_name', 'last_name')
    ordering = ('first_name', 'last_name')
    list_per_page = 25
    filter_horizontal = ('roles',)

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        (_('Personal Info'), {'fields': ('first_name', 'last_name', 'user_type')}),
        (_('Roles'), {'fields': ('roles',)}),
        (_('Permissions'), {
            'fields': ('is_active', 'is_staff', 'is_superuser'),
            'classes': ('collapse',),
        }),
        (_('Security'), {
            'fields': ('failed_login_attempts', 'locked_until'),
        }),
        (_('Important dates'), {
            'fields': ('last_login', 'created_at', 'updated_at'),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'email', 'first_name', 'last_name', 'user_type',
                'password1', 'password2', 'roles'
            ),
        }),
    )

    readonly_fields = ('created_at', 'updated_at', 'last_login')

    actions = ['unlock_accounts', 'deactivate_users', 'activate_users']

    def full_name_display(self, obj):
        return obj.get_full_name() or '-'
    full_name_display.short_description = 'Name'
    full_name_display.admin_order_field = 'first_name'

    def roles_display(self, obj):
        return ', '.join(role.name for role in obj.roles.all()) or '-'
    roles_display.short_description = 'Roles'

    def is_locked_display(self, obj):
        """Display whether the account is locked."""
        if obj.is_locked():
            return format_html('<span style="color: #DC2626;">Locked</span>')
        return '-'
    is_locked_display.short_description = 'Lock'

    def get_queryset(self, request):
        return super().get_queryset(request).prefetch_related('roles')

    def unlock_accounts(self, request, queryset):
        """Unlock selected accounts."""
        count = 0
        for user in queryset:
            if user.is_locked():
                user.unlock_account()
                count += 1
        self.message_user(request, f'{count} account(s) unlocked.')
    unlock_accounts.short_description = 'Unlock selected accounts'

    def deactivate_users(self, request, queryset):
        count = queryset.update(is_active=False)
        self.message_user(request, f'{count} user(s) deactivated.')
    deactivate_users.short_description = 'Deactivate selected users'

    def activate_users(self, request, queryset):
        count = queryset.update(is_active=True)
        self.message_user(request, f'{count} user(s) activated.')
    activate_users.short_description = 'Activate selected users'
