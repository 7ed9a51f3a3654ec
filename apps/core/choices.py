"""
Choices shared by the audit log, to-dos and notifications.
"""

from django.db import models


class Module(models.TextChoices):
    CONFERENCE = 'conference', 'Conference'
    MEETING = 'meeting', 'Meeting'
    PHD = 'phd', 'PhD'
    HANDOUT = 'handout', 'Course Handout'
    QP = 'qp', 'Question Paper Review'
