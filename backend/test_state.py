"""
Tests for the run-scoped execution state.
"""
import threading

from graph_engine.state import ExecutionState, NodeStatus


def test_mark_success_records_output_and_duration():
    state = ExecutionState()
    state.mark_running('A')
    entry = state.mark_success('A', 'hello')
    assert entry.status == NodeStatus.SUCCESS
    assert entry.output == 'hello'
    assert entry.duration >= 0
    assert state.output_of('A') == 'hello'
    assert not state.has_failures()


def test_snapshot_while_another_thread_writes():
    state = ExecutionState()
    errors = []
    stop = threading.Event()

    def writer():
        for i in range(20000):
            state.mark_running(f"n{i}")
            if i % 5000 == 0:
                state.reset()
        stop.set()

    def reader():
        while not stop.is_set():
            try:
                snapshot = state.snapshot()
            except RuntimeError as e:
                errors.append(str(e))
                return
            if any(entry['status'] != 'running' for entry in snapshot['nodes'].values()):
                errors.append('unexpected status')

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
