from ..models import Activity


def log_activity(user_id, type: str, title: str, subtitle: str = "", metadata: dict | None = None) -> Activity:
    return Activity.objects.create(
        user_id=user_id,
        type=type,
        title=title[:255],
        subtitle=(subtitle or "")[:255],
        metadata=metadata or {},
    )


def log_test_completed(attempt, exam) -> Activity:
    verdict = "Passed" if attempt.passed else "Failed"
    return log_activity(
        attempt.student_id,
        Activity.Type.TEST_COMPLETED,
        title=f"Completed: {exam.title}",
        subtitle=f"Score: {attempt.percentage}% - {verdict}",
        metadata={
            "test_id": exam.pk,
            "attempt_id": str(attempt.pk),
            "score": attempt.percentage,
            "passed": bool(attempt.passed),
        },
    )
