from council_tasks.domain.enums import TaskEvent, TaskStatus
from council_tasks.domain.state_machine import is_terminal, transition


def test_pending_accepts_progress_without_status_change():
    r = transition(TaskStatus.pending, TaskEvent.progress)
    assert r.ok is True
    assert r.status == TaskStatus.pending


def test_pending_success_and_error():
    assert transition(TaskStatus.pending, TaskEvent.success).status == TaskStatus.succeeded
    assert transition(TaskStatus.pending, TaskEvent.error).status == TaskStatus.failed


def test_duplicate_success_is_accepted():
    r = transition(TaskStatus.succeeded, TaskEvent.success)
    assert r.ok is True
    assert r.status == TaskStatus.succeeded


def test_result_processing_failure_compensates_to_failed():
    r = transition(TaskStatus.succeeded, TaskEvent.result_processing_failed)
    assert r.ok is True
    assert r.status == TaskStatus.failed


def test_terminal_states_reject_progress():
    for status in (TaskStatus.succeeded, TaskStatus.failed):
        r = transition(status, TaskEvent.progress)
        assert r.ok is False
        assert r.status == status
        assert r.reason == "terminal_state"


def test_success_after_failure_rejected():
    r = transition(TaskStatus.failed, TaskEvent.success)
    assert r.ok is False
    assert r.status == TaskStatus.failed


def test_pending_rejects_compensating_event():
    r = transition(TaskStatus.pending, TaskEvent.result_processing_failed)
    assert r.ok is False
    assert r.reason == "invalid_transition"


def test_is_terminal():
    assert is_terminal(TaskStatus.pending) is False
    assert is_terminal(TaskStatus.succeeded) is True
    assert is_terminal(TaskStatus.failed) is True
