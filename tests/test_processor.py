from __future__ import annotations

import threading
from pathlib import Path

import pytest

from easy_transcoder.engine import (
    ExitResult,
    QueueFullError,
    ResolutionStateError,
    TaskNotFoundError,
    TaskStatus,
)

from support import FakeProber, FakeRunner, wait_for, wait_for_status

_DONE = {TaskStatus.WAITING_FOR_RESOLUTION, TaskStatus.FAILED, TaskStatus.CANCELLED}


class ScriptedHandle:
    """Handle whose exit is decided by the test instead of a real process."""

    def __init__(self, on_wait, returncode: int = 0) -> None:
        self.on_wait = on_wait
        self.returncode = returncode
        self.terminated = False

    def terminate(self) -> None:
        self.terminated = True

    def wait(self) -> ExitResult:
        self.on_wait()
        return ExitResult(returncode=self.returncode, stderr="")


class CancellingProber(FakeProber):
    """Cancels the task while it is being probed."""

    def __init__(self) -> None:
        super().__init__()
        self.cancel = None

    def probe(self, input_path):
        self.cancel()
        return super().probe(input_path)


class ScriptedRunner(FakeRunner):
    def __init__(self, make_handle) -> None:
        super().__init__()
        self._make_handle = make_handle

    def launch(self, command):
        self.commands.append(list(command))
        return self._make_handle()


def test_end_to_end_replace(make_processor, tmp_path: Path) -> None:
    processor = make_processor()
    seen: list = []
    processor.registry.add_listener(seen.append)
    source = tmp_path / "movie.mp4"
    source.write_bytes(b"original-bytes")
    processor.start()

    task_id = processor.submit(str(source), "H264-fast")
    snapshot = wait_for_status(processor, task_id, _DONE)

    assert snapshot.status is TaskStatus.WAITING_FOR_RESOLUTION
    assert snapshot.progress == 1.0
    temp_output = Path(snapshot.temp_output)
    assert temp_output.name == "movie.mp4"
    assert temp_output.parent.parent == processor.temp_root
    assert temp_output.read_bytes() == b"transcoded:movie.mp4"

    progress = [item.progress for item in seen if item.id == task_id]
    assert progress == sorted(progress)
    assert any(0.0 < value < 1.0 for value in progress)

    processor.resolve(task_id, replace=True).join(timeout=5)

    final = processor.get(task_id)
    assert final.status is TaskStatus.COMPLETED
    assert source.read_bytes() == b"transcoded:movie.mp4"
    assert not temp_output.parent.exists()


def test_encoder_command_carries_profile_and_progress(processor, runner, tmp_path: Path) -> None:
    source = tmp_path / "movie.mp4"
    source.write_bytes(b"data")
    task_id = processor.submit(str(source), "H264-fast")

    processor.process_task(task_id)

    command = runner.commands[0]
    assert command[0] == "ffmpeg"
    assert command[command.index("-i") + 1] == str(source)
    assert command[command.index("-progress") + 1].startswith("unix://")
    assert command[command.index("-map") + 1] == "0"
    assert command[command.index("-c:v") + 1] == "libx264"
    assert command[command.index("-preset") + 1] == "ultrafast"
    assert command[-1] == processor.get(task_id).temp_output


def test_cancel_before_dequeue_never_launches(processor, runner, tmp_path: Path) -> None:
    task_id = processor.submit(str(tmp_path / "movie.mp4"), "H264-fast")

    processor.cancel(task_id)
    snapshot = processor.process_task(task_id)

    assert snapshot.status is TaskStatus.CANCELLED
    assert snapshot.temp_output is None
    assert runner.commands == []
    assert not processor.temp_root.exists() or list(processor.temp_root.iterdir()) == []


def test_cancel_running_task(make_processor, tmp_path: Path) -> None:
    processor = make_processor()
    source = tmp_path / "slow.mp4"
    source.write_bytes(b"data")
    processor.start()

    task_id = processor.submit(str(source), "H264-fast")
    assert wait_for(lambda: task_id in processor.registry.live_handles())

    processor.cancel(task_id)
    snapshot = wait_for_status(processor, task_id, _DONE)

    assert snapshot.status is TaskStatus.CANCELLED
    assert snapshot.cancel_requested is True
    assert snapshot.error is None
    assert not Path(snapshot.temp_output).parent.exists()


def test_cancel_racing_successful_exit_is_cancelled(make_processor, tmp_path: Path) -> None:
    holder: dict = {}

    def _make_handle():
        handle = ScriptedHandle(on_wait=lambda: holder["processor"].cancel(holder["task_id"]))
        holder["handle"] = handle
        return handle

    processor = make_processor(runner=ScriptedRunner(_make_handle))
    holder["processor"] = processor
    holder["task_id"] = processor.submit(str(tmp_path / "movie.mp4"), "H264-fast")

    snapshot = processor.process_task(holder["task_id"])

    assert snapshot.status is TaskStatus.CANCELLED
    assert holder["handle"].terminated is True


def test_probe_failure_fails_before_launch(processor, runner, tmp_path: Path) -> None:
    task_id = processor.submit(str(tmp_path / "broken.mp4"), "H264-fast")

    snapshot = processor.process_task(task_id)

    assert snapshot.status is TaskStatus.FAILED
    assert snapshot.error_kind == "ProbeError"
    assert runner.commands == []


def test_cancel_during_failing_probe_is_cancelled(make_processor, runner, tmp_path: Path) -> None:
    prober = CancellingProber()
    processor = make_processor(prober=prober)
    task_id = processor.submit(str(tmp_path / "broken.mp4"), "H264-fast")
    prober.cancel = lambda: processor.cancel(task_id)

    snapshot = processor.process_task(task_id)

    assert snapshot.status is TaskStatus.CANCELLED
    assert snapshot.error is None
    assert runner.commands == []


def test_cancel_during_probe_skips_temp_dir_and_launch(make_processor, runner, tmp_path: Path) -> None:
    prober = CancellingProber()
    processor = make_processor(prober=prober)
    task_id = processor.submit(str(tmp_path / "movie.mp4"), "H264-fast")
    prober.cancel = lambda: processor.cancel(task_id)

    snapshot = processor.process_task(task_id)

    assert snapshot.status is TaskStatus.CANCELLED
    assert snapshot.temp_output is None
    assert runner.commands == []
    assert not processor.temp_root.exists() or list(processor.temp_root.iterdir()) == []


def test_unknown_profile_fails_task(processor, runner, tmp_path: Path) -> None:
    task_id = processor.submit(str(tmp_path / "movie.mp4"), "does-not-exist")

    snapshot = processor.process_task(task_id)

    assert snapshot.status is TaskStatus.FAILED
    assert snapshot.error_kind == "ProfileNotFoundError"
    assert runner.commands == []


def test_non_zero_exit_fails_and_discards_output(processor, tmp_path: Path) -> None:
    source = tmp_path / "fail.mp4"
    source.write_bytes(b"data")
    task_id = processor.submit(str(source), "H264-fast")

    snapshot = processor.process_task(task_id)

    assert snapshot.status is TaskStatus.FAILED
    assert snapshot.error_kind == "ProcessError"
    assert "boom" in snapshot.error
    assert not Path(snapshot.temp_output).parent.exists()
    assert source.read_bytes() == b"data"


def test_worker_keeps_going_after_failure(make_processor, tmp_path: Path) -> None:
    processor = make_processor()
    bad = tmp_path / "fail.mp4"
    good = tmp_path / "good.mp4"
    bad.write_bytes(b"x")
    good.write_bytes(b"y")
    processor.start()

    first = processor.submit(str(bad), "H264-fast")
    second = processor.submit(str(good), "H264-fast")

    assert wait_for_status(processor, second, _DONE).status is TaskStatus.WAITING_FOR_RESOLUTION
    assert processor.get(first).status is TaskStatus.FAILED


def test_queue_full_rejects_submission(make_processor, tmp_path: Path) -> None:
    processor = make_processor(queue_size=2)
    processor.submit(str(tmp_path / "a.mp4"), "H264-fast")
    processor.submit(str(tmp_path / "b.mp4"), "H264-fast")

    with pytest.raises(QueueFullError):
        processor.submit(str(tmp_path / "c.mp4"), "H264-fast")
    assert len(processor.list()) == 2


def test_cancel_unknown_and_finished_tasks(processor, tmp_path: Path) -> None:
    with pytest.raises(TaskNotFoundError):
        processor.cancel(99)

    source = tmp_path / "fail.mp4"
    source.write_bytes(b"x")
    task_id = processor.submit(str(source), "H264-fast")
    processor.process_task(task_id)

    processor.cancel(task_id)
    snapshot = processor.get(task_id)
    assert snapshot.status is TaskStatus.FAILED
    assert snapshot.cancel_requested is False


def test_resolve_requires_waiting_status(processor, tmp_path: Path) -> None:
    task_id = processor.submit(str(tmp_path / "a.mp4"), "H264-fast")

    with pytest.raises(ResolutionStateError):
        processor.resolve(task_id, replace=False)
    assert processor.get(task_id).status is TaskStatus.PENDING


def test_waiting_callback_receives_snapshot(processor, tmp_path: Path) -> None:
    received: list = []
    processor.set_on_waiting_for_resolution(received.append)
    source = tmp_path / "movie.mp4"
    source.write_bytes(b"data")
    task_id = processor.submit(str(source), "H264-fast")

    processor.process_task(task_id)

    assert [snapshot.id for snapshot in received] == [task_id]
    assert received[0].status is TaskStatus.WAITING_FOR_RESOLUTION


def test_has_task_tracks_active_submissions(processor, tmp_path: Path) -> None:
    path = str(tmp_path / "a.mp4")
    assert processor.has_task(path, "H264-fast") is False

    task_id = processor.submit(path, "H264-fast")
    assert processor.has_task(path, "H264-fast") is True

    processor.cancel(task_id)
    assert processor.has_task(path, "H264-fast") is False


def test_shutdown_stops_running_encoder(make_processor, tmp_path: Path) -> None:
    processor = make_processor()
    source = tmp_path / "slow.mp4"
    source.write_bytes(b"data")
    processor.start()
    task_id = processor.submit(str(source), "H264-fast")
    assert wait_for(lambda: task_id in processor.registry.live_handles())

    stopper = threading.Thread(target=processor.shutdown)
    stopper.start()
    stopper.join(timeout=20)

    assert processor.running() is False
    assert processor.get(task_id).status is TaskStatus.CANCELLED


def test_concurrent_submissions_get_distinct_ids(processor, tmp_path: Path) -> None:
    ids: list[int] = []
    lock = threading.Lock()

    def _submit(worker: int) -> None:
        for index in range(10):
            task_id = processor.submit(str(tmp_path / f"{worker}-{index}.mp4"), "H264-fast")
            with lock:
                ids.append(task_id)

    threads = [threading.Thread(target=_submit, args=(worker,)) for worker in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(ids) == list(range(1, 81))
