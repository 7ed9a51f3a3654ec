"""
URL configuration for conference app.
"""

from django.urls import path
from . import views

app_name = 'conference'

urlpatterns = [
    # Applicant
    path('applications/', views.application_create, name='application_create'),
    path('applications/mine/', views.my_applications, name='my_applications'),
    path('applications/<int:pk>/', views.application_detail, name='application_detail'),
    path('applications/<int:pk>/edit/', views.application_edit, name='application_edit'),
    path('applications/<int:pk>/request-action/', views.request_action, name='request_action'),

    # Reviewers
    path('applications/pending/', views.pending, name='pending'),
    path('applications/all/', views.all_applications, name='all_applications'),
    path('applications/<int:pk>/members/', views.set_members, name='set_members'),
    path('applications/<int:pk>/review/member/', views.review_member, name='review_member'),
    path('applications/<int:pk>/review/convener/', views.review_convener, name='review_convener'),
    path('applications/<int:pk>/review/hod/', views.review_hod, name='review_hod'),
    path('applications/<int:pk>/handle-request/', views.handle_request, name='handle_request'),
    path('flow/', views.flow, name='flow'),
]
