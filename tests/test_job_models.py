import pytest

from tryon.errors import InvalidJobTransition
from tryon.jobs.models import JobRecord, JobStatus


def test_terminal_states():
    assert JobStatus.DONE.is_terminal
    assert JobStatus.ERROR.is_terminal
    assert not JobStatus.QUEUED.is_terminal
    assert not JobStatus.PROCESSING.is_terminal


def test_done_needs_url():
    job = JobRecord(id="j", created_at=1)
    job.processing(2)
    with pytest.raises(ValueError):
        job.done("", 3)
    assert job.status == JobStatus.PROCESSING


def test_invalid_transition_names_states():
    job = JobRecord(id="j", created_at=1)
    with pytest.raises(InvalidJobTransition) as info:
        job.done("https://x", 2)
    assert "queued" in str(info.value) and "done" in str(info.value)
