from django.contrib import admin, messages
from django.utils.html import format_html

from import_export import fields, resources
from import_export.admin import ExportMixin, ImportExportModelAdmin
from import_export.widgets import ForeignKeyWidget

from .exceptions import ExamError
from .models import Activity, Course, Exam, ExamAttempt, ExamQuestion
from .services import lifecycle
from .services.answers import decode_answers


# ---------- Import/Export resources ----------

class CourseResource(resources.ModelResource):
    class Meta:
        model = Course
        import_id_fields = ["id"]
        fields = ("id", "title")


class ExamResource(resources.ModelResource):
    course = fields.Field(
        column_name="course",
        attribute="course",
        widget=ForeignKeyWidget(Course, "title"),
    )

    class Meta:
        model = Exam
        import_id_fields = ["id"]
        fields = ("id", "course", "title", "duration_minutes", "passing_score", "is_published")


class ExamQuestionResource(resources.ModelResource):
    class Meta:
        model = ExamQuestion
        import_id_fields = ["id"]
        fields = ("id", "exam", "order", "text", "options", "correct_index", "explanation")


class ExamAttemptResource(resources.ModelResource):
    student = fields.Field(column_name="student", attribute="student__username")
    exam = fields.Field(column_name="exam", attribute="exam__title")

    class Meta:
        model = ExamAttempt
        fields = (
            "id", "student", "exam", "status", "started_at", "completed_at",
            "score", "percentage", "passed",
        )


# ---------- Admins ----------

@admin.register(Course)
class CourseAdmin(ImportExportModelAdmin):
    resource_class = CourseResource
    list_display = ("title", "created_at")
    search_fields = ("title",)


class ExamQuestionInline(admin.TabularInline):
    model = ExamQuestion
    extra = 0
    fields = ("order", "text", "options", "correct_index")
    ordering = ("order", "id")


@admin.register(Exam)
class ExamAdmin(ImportExportModelAdmin):
    resource_class = ExamResource
    inlines = [ExamQuestionInline]
    list_display = ("title", "course", "duration_minutes", "passing_score", "is_published", "attempts_count")
    list_filter = ("course", "is_published")
    search_fields = ("title", "course__title")

    def attempts_count(self, obj: Exam):
        return ExamAttempt.objects.filter(exam=obj).count()
    attempts_count.short_description = "Attempts"


@admin.register(ExamQuestion)
class ExamQuestionAdmin(ImportExportModelAdmin):
    resource_class = ExamQuestionResource
    list_display = ("exam", "order", "text", "correct_index")
    list_filter = ("exam",)
    ordering = ("exam", "order", "id")


@admin.register(ExamAttempt)
class ExamAttemptAdmin(ExportMixin, admin.ModelAdmin):
    resource_class = ExamAttemptResource

    list_display = (
        "id", "exam", "student", "status", "score_admin", "result_badge",
        "started_at", "completed_at", "remaining_admin",
    )
    list_filter = ("status", "exam", "course")
    search_fields = ("student__username", "student__email", "exam__title")
    ordering = ("-started_at",)
    actions = ["complete_selected", "expire_selected"]

    # results are written by the lifecycle service only
    readonly_fields = (
        "student", "exam", "course", "status", "started_at", "completed_at",
        "score", "percentage", "passed", "version",
        "remaining_admin", "answers_admin",
    )
    fieldsets = (
        ("Attempt", {"fields": ("student", "exam", "course", "status")}),
        ("Timing", {"fields": ("started_at", "completed_at", "remaining_admin")}),
        ("Outcome", {"fields": ("score", "percentage", "passed", "answers_admin", "version")}),
    )

    def has_add_permission(self, request):
        return False

    # ----- Display helpers -----
    def score_admin(self, obj):
        if obj.score is None:
            return "—"
        return f"{obj.score} ({obj.percentage}%)"
    score_admin.short_description = "Score"

    def result_badge(self, obj):
        if obj.passed is None:
            return "—"
        label, css = ("Pass", "background:#198754;color:#fff;") if obj.passed else \
                     ("Fail", "background:#dc3545;color:#fff;")
        return format_html(
            '<span style="padding:2px 8px;border-radius:12px;{}">{}</span>',
            css, label
        )
    result_badge.short_description = "Result"

    def remaining_admin(self, obj):
        return obj.remaining_seconds()
    remaining_admin.short_description = "Seconds left"

    def answers_admin(self, obj):
        rows = decode_answers(obj.answers)
        if not rows:
            return "—"
        return ", ".join(
            f"Q{a.question_index + 1}: {a.selected_option if a.is_answered else '-'}{' ⚑' if a.marked_for_review else ''}"
            for a in rows
        )
    answers_admin.short_description = "Answers"

    # ----- Actions -----
    def _run(self, request, queryset, op, verb):
        done, failed = 0, 0
        for attempt in queryset:
            try:
                op(attempt.pk)
                done += 1
            except ExamError as e:
                failed += 1
                self.message_user(request, f"{attempt.pk}: {e}", level=messages.WARNING)
        if done:
            self.message_user(request, f"{verb} {done} attempt(s).", level=messages.SUCCESS)
        return done, failed

    @admin.action(description="Complete and score")
    def complete_selected(self, request, queryset):
        self._run(request, queryset, lifecycle.complete_attempt, "Completed")

    @admin.action(description="Expire (administrative)")
    def expire_selected(self, request, queryset):
        self._run(request, queryset, lifecycle.expire_attempt, "Expired")


@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ("created_at", "user", "type", "title", "subtitle")
    list_filter = ("type",)
    search_fields = ("title", "user__username")
    ordering = ("-created_at",)
