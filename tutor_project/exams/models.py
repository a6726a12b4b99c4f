import math
import uuid
from datetime import timedelta

from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone


class Course(models.Model):
    title = models.CharField(max_length=200)
    created_at = models.DateTimeField(default=timezone.now)

    def __str__(self):
        return self.title


class Exam(models.Model):
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="exams")
    title = models.CharField(max_length=200)

    duration_minutes = models.PositiveIntegerField(
        null=True, blank=True,
        help_text="Time allowed once an attempt starts. Empty uses the site default.",
    )
    passing_score = models.PositiveSmallIntegerField(
        default=70,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Passing threshold as a percentage (0–100, inclusive).",
    )
    is_published = models.BooleanField(default=True)

    class Meta:
        ordering = ["course", "title", "id"]

    def __str__(self):
        return self.title

    @property
    def duration(self) -> timedelta:
        minutes = self.duration_minutes or settings.EXAM_DEFAULT_DURATION_MINUTES
        return timedelta(minutes=int(minutes))


class ExamQuestion(models.Model):
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name="questions")
    order = models.PositiveIntegerField(default=1)
    text = models.TextField()
    options = models.JSONField(default=list, blank=True)
    correct_index = models.PositiveSmallIntegerField(default=0)
    explanation = models.TextField(blank=True)

    class Meta:
        ordering = ["order", "id"]

    def __str__(self):
        return f"Q{self.order}: {self.text[:60]}"


class ExamAttempt(models.Model):
    class Status(models.TextChoices):
        IN_PROGRESS = "in_progress", "In progress"
        COMPLETED = "completed", "Completed"
        EXPIRED = "expired", "Expired"

    TERMINAL_STATUSES = (Status.COMPLETED, Status.EXPIRED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="exam_attempts")
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name="attempts")
    # denormalised for per-course dashboards
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="attempts")

    started_at = models.DateTimeField(default=timezone.now, editable=False)
    completed_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.IN_PROGRESS, db_index=True)

    # One JSON string per answer: "[question_index, selected_option, marked_for_review]"
    answers = models.JSONField(default=list, blank=True)
    version = models.PositiveIntegerField(default=0)

    score = models.PositiveIntegerField(null=True, blank=True)
    percentage = models.PositiveSmallIntegerField(null=True, blank=True)
    passed = models.BooleanField(null=True, blank=True)

    class Meta:
        ordering = ["-started_at"]
        indexes = [
            models.Index(fields=["student", "exam"], name="attempt_student_exam_idx"),
            models.Index(fields=["exam", "status"], name="attempt_exam_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["student", "exam"],
                condition=Q(status="in_progress"),
                name="one_in_progress_attempt_per_student_exam",
            ),
        ]

    def __str__(self):
        return f"{self.exam} / {self.student} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def deadline(self):
        return self.started_at + self.exam.duration

    def remaining_seconds(self, now=None) -> int:
        if self.is_terminal:
            return 0
        now = now or timezone.now()
        return max(0, math.floor((self.deadline - now).total_seconds()))


class Activity(models.Model):
    class Type(models.TextChoices):
        TEST_COMPLETED = "test_completed", "Test completed"
        COURSE_STARTED = "course_started", "Course started"
        ACHIEVEMENT = "achievement", "Achievement"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="activities")
    type = models.CharField(max_length=20, choices=Type.choices)
    title = models.CharField(max_length=255)
    subtitle = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name_plural = "activities"

    def __str__(self):
        return self.title
