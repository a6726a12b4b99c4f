import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Course",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=200)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
        ),
        migrations.CreateModel(
            name="Exam",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=200)),
                ("duration_minutes", models.PositiveIntegerField(
                    blank=True, null=True,
                    help_text="Time allowed once an attempt starts. Empty uses the site default.",
                )),
                ("passing_score", models.PositiveSmallIntegerField(
                    default=70,
                    help_text="Passing threshold as a percentage (0–100, inclusive).",
                    validators=[
                        django.core.validators.MinValueValidator(0),
                        django.core.validators.MaxValueValidator(100),
                    ],
                )),
                ("is_published", models.BooleanField(default=True)),
                ("course", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="exams", to="exams.course",
                )),
            ],
            options={"ordering": ["course", "title", "id"]},
        ),
        migrations.CreateModel(
            name="ExamQuestion",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("order", models.PositiveIntegerField(default=1)),
                ("text", models.TextField()),
                ("options", models.JSONField(blank=True, default=list)),
                ("correct_index", models.PositiveSmallIntegerField(default=0)),
                ("explanation", models.TextField(blank=True)),
                ("exam", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="questions", to="exams.exam",
                )),
            ],
            options={"ordering": ["order", "id"]},
        ),
        migrations.CreateModel(
            name="ExamAttempt",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("started_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("status", models.CharField(
                    choices=[("in_progress", "In progress"), ("completed", "Completed"), ("expired", "Expired")],
                    db_index=True, default="in_progress", max_length=12,
                )),
                ("answers", models.JSONField(blank=True, default=list)),
                ("version", models.PositiveIntegerField(default=0)),
                ("score", models.PositiveIntegerField(blank=True, null=True)),
                ("percentage", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("passed", models.BooleanField(blank=True, null=True)),
                ("course", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="attempts", to="exams.course",
                )),
                ("exam", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="attempts", to="exams.exam",
                )),
                ("student", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="exam_attempts",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "ordering": ["-started_at"],
                "indexes": [
                    models.Index(fields=["student", "exam"], name="attempt_student_exam_idx"),
                    models.Index(fields=["exam", "status"], name="attempt_exam_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "in_progress")),
                        fields=("student", "exam"),
                        name="one_in_progress_attempt_per_student_exam",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Activity",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(
                    choices=[
                        ("test_completed", "Test completed"),
                        ("course_started", "Course started"),
                        ("achievement", "Achievement"),
                    ],
                    max_length=20,
                )),
                ("title", models.CharField(max_length=255)),
                ("subtitle", models.CharField(blank=True, max_length=255)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("user", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="activities",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={"ordering": ["-created_at", "-id"], "verbose_name_plural": "activities"},
        ),
    ]
