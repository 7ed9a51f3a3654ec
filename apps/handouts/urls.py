"""
URL configuration for handouts app.
"""

from django.urls import path
from . import views

app_name = 'handouts'

urlpatterns = [
    # DCA convenor
    path('', views.handout_list, name='handout_list'),
    path('<int:pk>/reviewer/', views.assign_reviewer, name='assign_reviewer'),
    path('<int:pk>/final-decision/', views.final_decision, name='final_decision'),

    # IC / reviewer
    path('faculty/', views.faculty_handouts, name='faculty_handouts'),
    path('dca/', views.reviewer_handouts, name='reviewer_handouts'),
    path('<int:pk>/', views.handout_detail, name='handout_detail'),
    path('<int:pk>/submit/', views.submit, name='submit'),
    path('<int:pk>/review/', views.review, name='review'),
]
