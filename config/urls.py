"""
URL configuration for the faculty workflow portal.
"""

from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

urlpatterns = [
    path('admin/', admin.site.urls),

    # App URLs
    path('api/auth/', include('apps.accounts.urls', namespace='accounts')),
    path('api/', include('apps.notifications.urls', namespace='notifications')),
    path('api/activity/', include('apps.activity_log.urls', namespace='activity_log')),
    path('api/conference/', include('apps.conference.urls', namespace='conference')),
    path('api/meetings/', include('apps.meetings.urls', namespace='meetings')),
    path('api/phd/', include('apps.phd.urls', namespace='phd')),
    path('api/handouts/', include('apps.handouts.urls', namespace='handouts')),
    path('api/qp/', include('apps.qp.urls', namespace='qp')),
]

# Serve uploaded files in development
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)

if 'debug_toolbar' in settings.INSTALLED_APPS:
    import debug_toolbar
    urlpatterns = [
        path('__debug__/', include(debug_toolbar.urls)),
    ] + urlpatterns

# Admin site customization
admin.site.site_header = 'Faculty Portal Administration'
admin.site.site_title = 'Faculty Portal Admin'
admin.site.index_title = 'Welcome to Faculty Portal Admin'
