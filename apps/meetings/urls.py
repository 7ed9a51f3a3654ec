"""
URL configuration for meetings app.
"""

from django.urls import path
from . import views

app_name = 'meetings'

urlpatterns = [
    path('', views.meeting_list, name='meeting_list'),
    path('<int:pk>/', views.meeting_detail, name='meeting_detail'),
    path('<int:pk>/availability/', views.submit_availability, name='submit_availability'),
    path('<int:pk>/finalize/', views.finalize, name='finalize'),
    path('<int:pk>/remind/', views.remind, name='remind'),
    path('<int:pk>/invitees/', views.add_invitees, name='add_invitees'),
    path('<int:pk>/details/', views.update_details, name='update_details'),
    path('<int:pk>/cancel/', views.cancel, name='cancel'),
]
