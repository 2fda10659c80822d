# tests/test_retry_queue.py

import logging

from metadata_renamer.retry_queue import RetryQueue


def test_enqueue_and_due():
    queue = RetryQueue()
    queue.enqueue("ep1", "raw title", now=100)
    assert "ep1" in queue
    assert len(queue) == 1
    assert queue.due(now=110, min_delay_seconds=30) == []
    assert [e.episode_id for e in queue.due(now=130, min_delay_seconds=30)] == ["ep1"]

def test_enqueue_again_keeps_attempts():
    queue = RetryQueue()
    queue.enqueue("ep1", "first", now=0)
    queue.begin_attempt("ep1", now=10)
    queue.enqueue("ep1", "second", now=10)
    entry = queue.get("ep1")
    assert entry.attempts == 1
    assert entry.reason == "second"

def test_exhaustion_after_max_attempts(caplog):
    queue = RetryQueue()
    queue.enqueue("ep1", "no number", now=0)
    for i in range(3):
        assert not queue.is_exhausted("ep1", max_attempts=3)
        queue.begin_attempt("ep1", now=i)
    assert queue.is_exhausted("ep1", max_attempts=3)
    with caplog.at_level(logging.WARNING, logger="metadata_renamer"):
        removed = queue.remove("ep1", success=False)
    assert removed.attempts == 3
    assert "ep1" not in queue
    assert "Retry Exhausted" in caplog.text

def test_remove_unknown_and_clear():
    queue = RetryQueue()
    assert queue.remove("nope") is None
    assert queue.begin_attempt("nope", now=0) is None
    queue.enqueue("a", "r", now=0)
    queue.enqueue("b", "r", now=0)
    queue.clear()
    assert len(queue) == 0
