import threading

from edusync.core.task_manager import TaskManager


def wait_for_results(manager, count, timeout=5):
    results = []
    while len(results) < count:
        results.append(manager.result_queue.get(timeout=timeout))
    for item in results:
        manager.result_queue.put(item)


def test_results_are_delivered_through_drain():
    manager = TaskManager()
    seen = []
    manager.submit("ok", lambda: 42, lambda result, error: seen.append((result, error)))
    manager.submit("boom", lambda: 1 / 0, lambda result, error: seen.append((result, type(error))))
    wait_for_results(manager, 2)

    assert manager.drain() == 2
    assert sorted(seen, key=str) == sorted([(42, None), (None, ZeroDivisionError)], key=str)


def test_same_name_is_not_started_twice():
    manager = TaskManager()
    release = threading.Event()
    assert manager.submit("load", lambda: release.wait(5)) is True
    assert manager.submit("load", lambda: None) is False
    assert manager.get_active_tasks() == ["load"]
    release.set()
    wait_for_results(manager, 1)
    manager.drain()
    assert manager.submit("load", lambda: None) is True


def test_stopped_manager_refuses_jobs():
    manager = TaskManager()
    manager.stop()
    assert manager.submit("late", lambda: None) is False
