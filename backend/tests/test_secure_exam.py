import pytest

from adaptlearn.domain import SessionState, SubmitTrigger, ViolationKind
from adaptlearn.errors import InvalidTransition, NoQuestionsAvailable, PersistenceUnavailable
from adaptlearn.quiz_session import SecureExamSession, SessionRegistry
from adaptlearn.security_monitor import SecurityMonitor, Signal
from conftest import answer_correctly, make_questions


def _exam(quiz, store, scheduler, clock, n=10, session_id="e1", minutes=30):
    return SecureExamSession(
        session_id,
        "alice",
        quiz,
        make_questions(n),
        store=store,
        scheduler=scheduler,
        clock=clock,
        exam_minutes=minutes,
        violation_threshold=3,
        grace_seconds=3,
    )


def test_start_creates_exam_row_and_full_pool(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start(fullscreen_granted=True)
    assert exam.state == SessionState.IN_PROGRESS
    assert [q.id for q in exam.questions] == [f"q{i}" for i in range(10)]
    assert exam.exam.id in store.exams
    assert exam.time_remaining() == 30 * 60
    assert exam.monitor.attached and exam.monitor.fullscreen_held


def test_refused_fullscreen_is_not_fatal(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start(fullscreen_granted=False)
    assert exam.state == SessionState.IN_PROGRESS
    # No fullscreen held, so leaving it is not a violation
    assert exam.handle_signal(Signal.FULLSCREEN_EXITED).action == "noted"
    assert exam.exam.fullscreen_exits == 0


def test_exam_row_failure_blocks_start(quiz, store, scheduler, clock):
    store.failing = {"create_exam_session"}
    exam = _exam(quiz, store, scheduler, clock)
    with pytest.raises(PersistenceUnavailable):
        exam.start(fullscreen_granted=True)
    assert exam.state == SessionState.CONFIGURING
    assert scheduler.pending() == []
    assert not exam.monitor.attached


def test_empty_pool(quiz, store, scheduler, clock):
    with pytest.raises(NoQuestionsAvailable):
        _exam(quiz, store, scheduler, clock, n=0).start()
    assert store.exams == {}


def test_two_violations_do_not_flag(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start(fullscreen_granted=True)
    r1 = exam.handle_signal(Signal.VISIBILITY_HIDDEN)
    r2 = exam.handle_signal(Signal.FULLSCREEN_EXITED)
    assert r1.violation == ViolationKind.TAB_SWITCH
    assert r2.violation == ViolationKind.FULLSCREEN_EXIT
    assert "(2/3 allowed)" in r2.warning
    assert not exam.exam.flagged
    scheduler.advance(10)
    assert exam.state == SessionState.IN_PROGRESS


def test_third_violation_flags_and_auto_submits_once(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start(fullscreen_granted=True)
    answer_correctly(exam, 4)
    exam.handle_signal(Signal.VISIBILITY_HIDDEN)
    exam.handle_signal(Signal.VISIBILITY_HIDDEN)
    result = exam.handle_signal(Signal.FULLSCREEN_EXITED)
    assert exam.exam.flagged
    assert exam.exam.flag_reason
    assert "flagged" in result.warning
    assert store.exams[exam.exam.id].flagged
    assert store.exams[exam.exam.id].tab_switches == 2
    assert store.exams[exam.exam.id].fullscreen_exits == 1
    # Grace period before the automatic submission
    scheduler.advance(2.9)
    assert exam.state == SessionState.IN_PROGRESS
    scheduler.advance(0.1)
    assert exam.state == SessionState.SUBMITTED
    assert exam.submit_trigger == SubmitTrigger.VIOLATION
    scheduler.advance(60 * 60)
    assert len(store.attempts) == 1
    assert store.attempts[0].score == 40


def test_violation_kinds_share_one_counter(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start(fullscreen_granted=True)
    exam.handle_signal(Signal.FULLSCREEN_EXITED)
    exam.handle_signal(Signal.FULLSCREEN_ENTERED)
    exam.handle_signal(Signal.FULLSCREEN_EXITED)
    assert not exam.exam.flagged
    exam.handle_signal(Signal.VISIBILITY_HIDDEN)
    assert exam.exam.flagged
    assert exam.exam.violation_count == 3


def test_flag_is_monotonic_and_scheduled_once(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start(fullscreen_granted=False)
    for _ in range(5):
        exam.handle_signal(Signal.VISIBILITY_HIDDEN)
    assert exam.exam.flagged
    assert exam.exam.tab_switches == 5
    # the exam timer plus exactly one auto-submit
    assert len(scheduler.pending()) == 2
    scheduler.advance(3)
    assert exam.exam.flagged
    assert len(store.attempts) == 1


def test_user_submit_during_grace_wins(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start()
    for _ in range(3):
        exam.handle_signal(Signal.VISIBILITY_HIDDEN)
    exam.submit()
    scheduler.advance(5)
    assert exam.submit_trigger == SubmitTrigger.USER
    assert len(store.attempts) == 1


def test_timer_and_violation_race_submit_once(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock, minutes=1)
    exam.start()
    scheduler.advance(58)
    for _ in range(3):
        exam.handle_signal(Signal.VISIBILITY_HIDDEN)
    scheduler.advance(10)
    assert exam.submit_trigger == SubmitTrigger.TIMER
    assert len(store.attempts) == 1


def test_copy_paste_blocked_without_counting(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start(fullscreen_granted=True)
    for signal in (Signal.COPY, Signal.PASTE, Signal.CONTEXT_MENU):
        result = exam.handle_signal(signal)
        assert result.action == "blocked"
        assert result.warning
    assert exam.exam.violation_count == 0


def test_submit_closes_exam_and_detaches_monitor(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start(fullscreen_granted=True)
    clock.advance(120)
    exam.submit()
    assert store.closed[exam.exam.id] == clock.now
    assert exam.release_fullscreen
    assert not exam.monitor.attached
    assert exam.handle_signal(Signal.VISIBILITY_HIDDEN).action == "ignored"
    assert exam.exam.tab_switches == 0
    assert store.attempts[0].time_taken_seconds == 120


def test_exam_progression_applies(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start()
    answer_correctly(exam, 10)
    exam.submit()
    assert store.profiles["alice"] == (100, "beginner")


def test_abandon_closes_row_without_attempt(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start(fullscreen_granted=True)
    exam.abandon()
    assert exam.exam.id in store.closed
    assert store.attempts == []
    assert scheduler.pending() == []
    assert exam.handle_signal(Signal.VISIBILITY_HIDDEN).action == "ignored"


def test_secure_exam_cannot_retry(quiz, store, scheduler, clock):
    exam = _exam(quiz, store, scheduler, clock)
    exam.start()
    exam.submit()
    with pytest.raises(InvalidTransition):
        exam.retry()


def test_new_start_supersedes_active_exam(quiz, store, scheduler, clock):
    registry = SessionRegistry()
    first = registry.add(_exam(quiz, store, scheduler, clock, session_id="e1"))
    first.start()
    assert registry.supersede_exam("alice", quiz.id) == "e1"
    assert first.abandoned
    assert first.exam.id in store.closed
    assert registry.active_exam("alice", quiz.id) is None
    second = registry.add(_exam(quiz, store, scheduler, clock, session_id="e2"))
    second.start()
    assert registry.active_exam("alice", quiz.id) is second
    assert registry.supersede_exam("bob", quiz.id) is None


def test_monitor_outside_attachment_ignores_everything():
    calls = []
    monitor = SecurityMonitor(lambda kind: calls.append(kind))
    assert monitor.handle(Signal.VISIBILITY_HIDDEN).action == "ignored"
    monitor.attach(fullscreen_granted=True)
    assert monitor.handle(Signal.VISIBILITY_VISIBLE).action == "noted"
    assert monitor.handle(Signal.FULLSCREEN_EXITED).action == "violation"
    # Already out of fullscreen: a second exit event is not a new violation
    assert monitor.handle(Signal.FULLSCREEN_EXITED).action == "noted"
    monitor.detach()
    assert monitor.handle(Signal.COPY).action == "ignored"
    assert calls == [ViolationKind.FULLSCREEN_EXIT]


def test_failed_restart_keeps_running_exam(quiz, store, scheduler, clock):
    registry = SessionRegistry()
    first = _exam(quiz, store, scheduler, clock, session_id="e1")
    assert registry.start_exam(first, fullscreen_granted=True) is None
    store.failing = {"create_exam_session"}
    second = _exam(quiz, store, scheduler, clock, session_id="e2")
    with pytest.raises(PersistenceUnavailable):
        registry.start_exam(second)
    assert len(registry) == 1
    assert registry.active_exam("alice", quiz.id) is first
    assert not first.abandoned
    assert first.exam.id not in store.closed
    assert first.monitor.attached


def test_successful_restart_supersedes(quiz, store, scheduler, clock):
    registry = SessionRegistry()
    first = _exam(quiz, store, scheduler, clock, session_id="e1")
    registry.start_exam(first)
    second = _exam(quiz, store, scheduler, clock, session_id="e2")
    assert registry.start_exam(second) == "e1"
    assert first.abandoned
    assert registry.active_exam("alice", quiz.id) is second
    assert len(registry) == 1
