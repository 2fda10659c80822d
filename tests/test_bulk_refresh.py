# tests/test_bulk_refresh.py

from metadata_renamer.bulk_refresh import BulkRefreshDetector


def record_many(detector, times, window=30, threshold=3, cooldown=300):
    return [detector.record(t, window, threshold, cooldown) for t in times]


def test_triggers_at_threshold_and_clears_window():
    detector = BulkRefreshDetector()
    assert record_many(detector, [0, 1, 2]) == [False, False, True]
    assert detector.pending == 0

def test_old_updates_fall_out_of_window():
    detector = BulkRefreshDetector()
    # Spread wider than the window: never three inside 30 seconds.
    assert record_many(detector, [0, 20, 40, 60, 80]) == [False] * 5
    assert detector.pending == 2

def test_cooldown_blocks_second_trigger():
    detector = BulkRefreshDetector()
    assert record_many(detector, [0, 1, 2]) == [False, False, True]
    assert record_many(detector, [10, 11, 12]) == [False, False, False]
    assert record_many(detector, [400, 401, 402]) == [False, False, True]

def test_clear_resets_cooldown():
    detector = BulkRefreshDetector()
    record_many(detector, [0, 1, 2])
    detector.clear()
    assert record_many(detector, [3, 4, 5]) == [False, False, True]
