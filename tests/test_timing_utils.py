import json
import threading
import time

import timing_utils
from timing_utils import PerfTimer, log_inference, log_model_load


def test_perf_timer_measures_ms() -> None:
    with PerfTimer() as t:
        time.sleep(0.01)
    assert t.ms >= 5.0
    t.reset()
    assert t.ms == 0.0


def test_records_written_only_when_enabled(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RECORD_TIME", raising=False)
    log_inference("m.onnx", 0, "a.jpg", 1.0, 2.0, 3.0)
    assert not (tmp_path / timing_utils.RESULT_TIME_FILE).exists()

    monkeypatch.setenv("RECORD_TIME", "1")
    monkeypatch.setenv("RUN_ID", "run-7")
    log_model_load("m.onnx", "", ["CPUExecutionProvider"], 1, 12.5)
    log_inference("m.onnx", 1, "a.jpg", 1.0, 2.0, 3.0)

    lines = (tmp_path / timing_utils.RESULT_TIME_FILE).read_text(encoding="utf-8").splitlines()
    records = [json.loads(line) for line in lines]
    assert [r["kind"] for r in records] == ["model_load", "inference"]
    assert records[0]["delegate"] == "cpu"
    assert records[1]["inference_time_ms"] == 2.0
    assert all(r["run_id"] == "run-7" for r in records)


def test_invalid_record_time_is_disabled(monkeypatch) -> None:
    monkeypatch.setenv("RECORD_TIME", "yes")
    assert timing_utils.should_record_time() is False


def test_concurrent_records_stay_whole_lines(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RECORD_TIME", "1")
    monkeypatch.delenv("RUN_ID", raising=False)

    def write(shard_id: int) -> None:
        for i in range(50):
            log_inference("m.onnx", shard_id, f"img_{i:04d}.jpg" + "x" * 200, 1.0, 2.0, 3.0)

    threads = [threading.Thread(target=write, args=(shard_id,)) for shard_id in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    lines = (tmp_path / timing_utils.RESULT_TIME_FILE).read_text(encoding="utf-8").splitlines()
    assert len(lines) == 8 * 50
    records = [json.loads(line) for line in lines]
    assert sorted({r["shard_id"] for r in records}) == list(range(8))
