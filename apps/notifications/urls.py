"""
URL configuration for notifications app.
"""

from django.urls import path
from . import views

app_name = 'notifications'

urlpatterns = [
    path('todos/', views.todo_list_view, name='todo_list'),
    path('notifications/', views.notification_list_view, name='notification_list'),
    path('notifications/read/', views.notification_mark_read_view, name='notification_mark_read'),
]
