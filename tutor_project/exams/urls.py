from django.urls import path

from . import views

urlpatterns = [
    path("exams/<int:exam_id>/attempts/start/", views.attempt_start, name="exam_attempt_start"),
    path("exams/<int:exam_id>/stats/", views.exam_stats, name="exam_stats"),

    path("attempts/<uuid:attempt_id>/", views.attempt_detail, name="attempt_detail"),
    path("attempts/<uuid:attempt_id>/answers/", views.attempt_answer, name="attempt_answer"),
    path("attempts/<uuid:attempt_id>/complete/", views.attempt_complete, name="attempt_complete"),
    path("attempts/<uuid:attempt_id>/expire/", views.attempt_expire, name="attempt_expire"),
    path("attempts/<uuid:attempt_id>/remaining/", views.attempt_remaining, name="attempt_remaining"),

    path("me/attempts/", views.my_attempts, name="my_attempts"),
]
