"""
URL configuration for qp app.
"""

from django.urls import path
from . import views

app_name = 'qp'

urlpatterns = [
    # DCA convenor
    path('', views.qp_list, name='qp_list'),
    path('<int:pk>/edit/', views.edit, name='edit'),
    path('<int:pk>/reviewer/', views.assign_reviewer, name='assign_reviewer'),
    path('reminders/', views.reminders, name='reminders'),
    path('reviews/export/', views.export_reviews, name='export_reviews'),

    # IC / reviewer
    path('faculty/', views.faculty_requests, name='faculty_requests'),
    path('dca/', views.reviewer_requests, name='reviewer_requests'),
    path('<int:pk>/', views.qp_detail, name='qp_detail'),
    path('<int:pk>/upload/', views.upload, name='upload'),
    path('<int:pk>/review/', views.review, name='review'),
]
