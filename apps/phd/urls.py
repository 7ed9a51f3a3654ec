"""
URL configuration for phd app.
"""

from django.urls import path
from . import views

app_name = 'phd'

urlpatterns = [
    path('semesters/', views.semesters, name='semesters'),

    # Student
    path('proposals/', views.proposal_submit, name='proposal_submit'),
    path('proposals/mine/', views.my_proposals, name='my_proposals'),
    path('proposals/<int:pk>/', views.proposal_detail, name='proposal_detail'),
    path('proposals/<int:pk>/resubmit/', views.proposal_resubmit, name='proposal_resubmit'),

    # Supervisor / co-supervisor
    path('supervisor/proposals/', views.supervisor_proposals, name='supervisor_proposals'),
    path('supervisor/proposals/<int:pk>/review/', views.supervisor_review, name='supervisor_review'),
    path('supervisor/proposals/<int:pk>/seminar/', views.book_seminar_slot, name='book_seminar_slot'),
    path('co-supervisor/proposals/', views.co_supervisor_proposals, name='co_supervisor_proposals'),
    path('co-supervisor/proposals/<int:pk>/approve/', views.co_supervisor_approve, name='co_supervisor_approve'),

    # DRC convenor
    path('drc/proposals/', views.drc_proposals, name='drc_proposals'),
    path('drc/proposals/<int:pk>/review/', views.drc_review, name='drc_review'),
    path('drc/proposals/<int:pk>/reenable/', views.reenable, name='reenable'),
    path('drc/proposals/<int:pk>/cancel-seminar/', views.cancel_seminar_booking, name='cancel_seminar_booking'),
    path('seminar-slots/', views.seminar_slots, name='seminar_slots'),
    path('seminar-slots/delete/', views.seminar_slots_delete, name='seminar_slots_delete'),

    # DAC member
    path('dac/proposals/', views.dac_proposals, name='dac_proposals'),
    path('dac/proposals/<int:pk>/review/', views.dac_review, name='dac_review'),
]
