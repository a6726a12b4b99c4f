"""
Client-side attempt session for async UIs.

The services in ``services/`` are synchronous Django code. AttemptSession
wraps them with ``sync_to_async`` and adds the client concerns:

- ForegroundGuard: answer mutations are rejected while the app is in the
  background (AppBackgroundedError), never queued.
- ExpiryWatcher: remaining time is recomputed from the persisted anchor on
  every tick; when it reaches zero the attempt is completed exactly once.
  A completion that fails is retried on the next tick or foreground.
- a per-session write queue: writes run in submission order, so a slow
  earlier write cannot land after a later one from the same device.

Nothing is cached across relaunches. ``resume()`` rebuilds the session from
the stored attempt and completes it at once if its time is already up.
"""

import asyncio
import functools
import inspect
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings

from .exceptions import AppBackgroundedError, InvalidStateError, NotFoundError
from .models import ExamAttempt
from .services import lifecycle, timer
from .services.answers import UNANSWERED, Answer, decode_answers, make_answer

logger = logging.getLogger(__name__)


class ForegroundGuard:
    def __init__(self, foreground: bool = True):
        self._foreground = foreground

    @property
    def is_foreground(self) -> bool:
        return self._foreground

    def set_background(self):
        self._foreground = False

    def set_foreground(self):
        self._foreground = True

    def ensure_foreground(self):
        if not self._foreground:
            raise AppBackgroundedError("Answers cannot be changed while the app is in the background.")


class ExpiryWatcher:
    """
    Holds the anchor (started_at, duration) captured once from storage and
    calls ``on_expire`` the first time remaining time reaches zero.
    """

    def __init__(self, started_at: datetime, duration: timedelta, on_expire: Callable,
                 clock: Callable[[], datetime] = timer.now, interval: Optional[float] = None):
        self.started_at = started_at
        self.duration = duration
        self._on_expire = on_expire
        self._clock = clock
        self.interval = float(interval if interval is not None else settings.EXAM_POLL_INTERVAL_SECONDS)
        self.fired = False
        self._lock = asyncio.Lock()

    def remaining(self) -> int:
        return timer.remaining_seconds(self.started_at, self.duration, self._clock())

    async def check(self) -> bool:
        """
        True once time is up and the callback has succeeded. Overlapping
        checks wait for the one in flight. If the callback raises, the error
        propagates and the next check tries again.
        """
        async with self._lock:
            if self.fired:
                return True
            if self.remaining() > 0:
                return False
            result = self._on_expire()
            if inspect.isawaitable(result):
                await result
            self.fired = True
            return True

    async def run(self, is_foreground: Callable[[], bool]):
        # While backgrounded the loop idles; on_foreground does the catch-up check.
        while not self.fired:
            if is_foreground():
                try:
                    if await self.check():
                        break
                except Exception:
                    logger.exception("Time-up completion failed; retrying in %ss", self.interval)
            await asyncio.sleep(self.interval)


class AttemptSession:
    def __init__(self, student, exam_id=None, course_id=None, *,
                 clock: Callable[[], datetime] = timer.now,
                 poll_interval: Optional[float] = None,
                 on_completed: Optional[Callable[[ExamAttempt], None]] = None):
        self.student = student
        self.exam_id = exam_id
        self.course_id = course_id
        self.attempt: Optional[ExamAttempt] = None
        self.guard = ForegroundGuard()

        self._clock = clock
        self._poll_interval = poll_interval
        self._on_completed = on_completed
        self._watcher: Optional[ExpiryWatcher] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()
        self._pending: set = set()
        self._answers: Dict[int, Answer] = {}

    # ------------------------------------------------------------------
    # binding
    # ------------------------------------------------------------------

    def _bind(self, attempt: ExamAttempt):
        self.attempt = attempt
        self.exam_id = attempt.exam_id
        self._answers = {a.question_index: a for a in decode_answers(attempt.answers)}
        if attempt.status == ExamAttempt.Status.IN_PROGRESS:
            self._watcher = ExpiryWatcher(
                attempt.started_at, attempt.exam.duration, self._expire_now,
                clock=self._clock, interval=self._poll_interval,
            )
        else:
            self._watcher = None

    def _require_attempt(self) -> ExamAttempt:
        if self.attempt is None:
            raise InvalidStateError("No attempt has been started in this session.")
        return self.attempt

    async def _expire_now(self):
        logger.info("Time is up for attempt %s; completing", self.attempt.pk)
        await self._complete()

    # ------------------------------------------------------------------
    # start / resume
    # ------------------------------------------------------------------

    async def start(self) -> ExamAttempt:
        """Start, or resume the in-progress attempt for (student, exam)."""
        self.guard.ensure_foreground()
        attempt, _ = await sync_to_async(lifecycle.get_or_start_attempt)(
            self.student, self.exam_id, self.course_id
        )
        self._bind(attempt)
        await self._watcher.check()
        return self.attempt

    async def resume(self, attempt_id) -> ExamAttempt:
        """Relaunch path: rebuild from storage, completing at once if time is up."""
        attempt = await sync_to_async(lifecycle.get_attempt)(attempt_id)
        if str(attempt.student_id) != str(getattr(self.student, "pk", self.student)):
            raise NotFoundError(f"Attempt {attempt_id} not found.")
        self._bind(attempt)
        if self._watcher is not None:
            await self._watcher.check()
        return self.attempt

    # ------------------------------------------------------------------
    # answers
    # ------------------------------------------------------------------

    async def submit_answer(self, question_index, selected_option, marked_for_review=False) -> ExamAttempt:
        self.guard.ensure_foreground()
        attempt = self._require_attempt()
        async with self._write_lock:
            updated = await sync_to_async(lifecycle.submit_answer)(
                attempt.pk, question_index, selected_option, marked_for_review, at=self._clock()
            )
        self.attempt = updated
        return updated

    async def submit_answers_batch(self, answers) -> ExamAttempt:
        self.guard.ensure_foreground()
        attempt = self._require_attempt()
        answers = list(answers)
        async with self._write_lock:
            updated = await sync_to_async(lifecycle.submit_answers_batch)(attempt.pk, answers, at=self._clock())
        self.attempt = updated
        return updated

    def _enqueue(self, answer: Answer) -> asyncio.Task:
        previous = self._answers.get(answer.question_index)
        self._answers[answer.question_index] = answer
        task = asyncio.ensure_future(self.submit_answer(*answer))
        self._pending.add(task)
        task.add_done_callback(functools.partial(self._write_done, answer, previous))
        return task

    def _write_done(self, answer: Answer, previous: Optional[Answer], task: asyncio.Task):
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is None:
            return
        if task.cancelled():
            logger.warning("Answer write cancelled on attempt %s", getattr(self.attempt, "pk", None))
        else:
            logger.warning("Answer write failed on attempt %s: %s", getattr(self.attempt, "pk", None), task.exception())
        # roll the local view back unless a newer selection has replaced it
        if self._answers.get(answer.question_index) == answer:
            if previous is None:
                self._answers.pop(answer.question_index, None)
            else:
                self._answers[answer.question_index] = previous

    def select_option(self, question_index, option) -> asyncio.Task:
        """
        Record a selection and return the write task without waiting for it.
        The review flag already set for the question is kept.
        """
        self.guard.ensure_foreground()
        self._require_attempt()
        current = self._answers.get(question_index)
        flagged = current.marked_for_review if current else False
        return self._enqueue(make_answer(question_index, option, flagged))

    def toggle_flag(self, question_index) -> asyncio.Task:
        """Flip marked_for_review, keeping the selection (-1 when nothing is selected)."""
        self.guard.ensure_foreground()
        self._require_attempt()
        current = self._answers.get(question_index)
        selected = current.selected_option if current else UNANSWERED
        flagged = current.marked_for_review if current else False
        return self._enqueue(make_answer(question_index, selected, not flagged))

    async def flush(self):
        """Wait for every queued write. Failures were already logged."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def get_answers(self) -> List[Answer]:
        attempt = self._require_attempt()
        return await sync_to_async(lifecycle.get_answers)(attempt.pk)

    def get_remaining_time(self) -> int:
        attempt = self._require_attempt()
        if attempt.is_terminal or self._watcher is None:
            return 0
        return self._watcher.remaining()

    # ------------------------------------------------------------------
    # terminal transitions
    # ------------------------------------------------------------------

    async def _complete(self) -> ExamAttempt:
        attempt = self._require_attempt()
        await self.flush()
        async with self._write_lock:
            done = await sync_to_async(lifecycle.complete_attempt)(attempt.pk, at=self._clock())
        already_final = self.attempt is not None and self.attempt.is_terminal
        self.attempt = done
        if self._watcher is not None:
            self._watcher.fired = True
        self.stop_polling()
        if self._on_completed and not already_final:
            self._on_completed(done)
        return done

    async def complete(self) -> ExamAttempt:
        """User-initiated submit. Idempotent once the attempt is completed."""
        self.guard.ensure_foreground()
        return await self._complete()

    async def expire(self) -> ExamAttempt:
        attempt = self._require_attempt()
        await self.flush()
        async with self._write_lock:
            self.attempt = await sync_to_async(lifecycle.expire_attempt)(attempt.pk, at=self._clock())
        if self._watcher is not None:
            self._watcher.fired = True
        self.stop_polling()
        return self.attempt

    # ------------------------------------------------------------------
    # app lifecycle
    # ------------------------------------------------------------------

    def on_background(self):
        self.guard.set_background()

    async def on_foreground(self) -> Optional[ExamAttempt]:
        self.guard.set_foreground()
        if self._watcher is not None:
            await self._watcher.check()
        return self.attempt

    def start_polling(self) -> Optional[asyncio.Task]:
        if self._watcher is None or self._watcher.fired:
            return None
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.ensure_future(self._watcher.run(lambda: self.guard.is_foreground))
        return self._poll_task

    def stop_polling(self):
        task, self._poll_task = self._poll_task, None
        # completion may be running inside the poll task itself
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
