"""Tests for the view lifetime guard used by background loads."""

from core.services.load_guard import LoadGuard, LoadSequence


def test_bound_callback_runs_while_alive():
    seen = []
    guard = LoadGuard()
    cb = guard.bind(seen.append)
    cb("origines")
    assert seen == ["origines"]


def test_late_callback_after_close_is_dropped():
    seen = []
    guard = LoadGuard()
    cb = guard.bind(seen.append)
    guard.close()
    assert cb("armateurs") is None
    assert seen == []
    assert not guard.alive


def test_close_is_idempotent():
    guard = LoadGuard()
    guard.close()
    guard.close()
    assert guard.alive is False


# ---------------------------------------------------------------------------
# LoadSequence
# ---------------------------------------------------------------------------

def test_superseded_load_result_is_dropped():
    applied = []
    loads = LoadSequence()
    first = loads.next().bind(applied.append)   # échantillon de 50
    second = loads.next().bind(applied.append)  # remplacé par 10
    second("sample10")
    first("sample50")
    assert applied == ["sample10"]


def test_sequence_close_drops_current_load():
    applied = []
    loads = LoadSequence()
    guard = loads.next()
    cb = guard.bind(applied.append)
    loads.close()
    cb("late")
    assert applied == []
    assert not guard.alive


def test_each_load_gets_a_fresh_guard():
    loads = LoadSequence()
    a = loads.next()
    b = loads.next()
    assert a is not b
    assert not a.alive and b.alive
