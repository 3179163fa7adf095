import asyncio
import threading

from plugins.super_resolution.core import (
    ModelQuality,
    PipelineCache,
    UpscaleWorker,
    is_terminal,
)
from support import FakeBackend


def _job(quality="low", **extra):
    return {"payload": {"imageUrl": "data:image/png;base64,AAAA", "modelQuality": quality, **extra}}


def _run(worker, *messages):
    outboxes = []

    async def scenario():
        for message in messages:
            outbox = []
            await worker.handle_message(message, outbox.append)
            outboxes.append(outbox)

    asyncio.run(scenario())
    return outboxes


def _terminals(outbox):
    return [message for message in outbox if is_terminal(message)]


def test_complete_is_preceded_by_progress():
    worker = UpscaleWorker(PipelineCache(FakeBackend()))
    (outbox,) = _run(worker, _job())
    assert [message["status"] for message in outbox] == ["initiate", "ready", "complete"]
    assert outbox[-1]["result"].scale == 2.0
    assert len(_terminals(outbox)) == 1


def test_cached_pipeline_emits_no_load_progress():
    backend = FakeBackend()
    worker = UpscaleWorker(PipelineCache(backend))
    first, second = _run(worker, _job(), _job())
    assert len(first) == 3
    assert [message["status"] for message in second] == ["complete"]
    assert len(backend.created) == 1
    assert backend.created[0].calls == ["data:image/png;base64,AAAA"] * 2


def test_malformed_payloads_report_errors_and_worker_recovers():
    worker = UpscaleWorker(PipelineCache(FakeBackend()))
    outboxes = _run(
        worker,
        {"payload": {}},
        {"nothing": "here"},
        {"payload": {"imageUrl": ""}},
        "not a mapping",
        _job(),
    )
    for outbox in outboxes[:-1]:
        assert len(outbox) == 1
        assert outbox[0]["status"] == "error"
        assert outbox[0]["message"]
    assert outboxes[-1][-1]["status"] == "complete"


def test_model_load_failure_reports_error():
    worker = UpscaleWorker(PipelineCache(FakeBackend(load_failures=1)))
    failed, recovered = _run(worker, _job(), _job())
    assert _terminals(failed) == [
        {"status": "error", "message": "Missing weights file: RealESRGAN_x2plus.pth"}
    ]
    assert _terminals(recovered)[0]["status"] == "complete"


def test_inference_failure_reports_error():
    backend = FakeBackend(inference_errors={"RealESRGAN_x4plus": "out of memory"})
    worker = UpscaleWorker(PipelineCache(backend))
    failed, recovered = _run(worker, _job("high"), _job("low"))
    assert _terminals(failed) == [{"status": "error", "message": "out of memory"}]
    assert _terminals(recovered)[0]["status"] == "complete"


def test_job_id_is_echoed_on_terminal_messages():
    backend = FakeBackend(inference_errors={"RealESRGAN_x4plus": "boom"})
    worker = UpscaleWorker(PipelineCache(backend))
    ok_box, err_box = _run(worker, _job(jobId="a1"), _job("high", jobId="b2"))
    assert ok_box[-1]["jobId"] == "a1"
    assert err_box[-1] == {"status": "error", "message": "boom", "jobId": "b2"}


def test_tier_switch_while_low_inference_is_pending():
    backend = FakeBackend(gated={"RealESRGAN_x2plus"})
    worker = UpscaleWorker(PipelineCache(backend))
    low_box, high_box, later_box = [], [], []

    async def scenario():
        low = asyncio.create_task(worker.handle_message(_job("low"), low_box.append))
        while not backend.created or not backend.created[0].calls:
            await asyncio.sleep(0)
        await worker.handle_message(_job("high"), high_box.append)
        assert worker.cache.tier is ModelQuality.HIGH
        backend.release("RealESRGAN_x2plus")
        await low
        await worker.handle_message(_job("high"), later_box.append)

    asyncio.run(scenario())
    assert low_box[-1]["status"] == "complete"
    assert low_box[-1]["result"].scale == 2.0
    assert high_box[-1]["result"].scale == 4.0
    assert later_box == [later_box[-1]]
    assert later_box[-1]["result"].scale == 4.0
    assert [p.model_id for p in backend.created] == ["RealESRGAN_x2plus", "RealESRGAN_x4plus"]


def test_port_delivers_messages_from_background_loop():
    worker = UpscaleWorker(PipelineCache(FakeBackend())).start()
    received = []
    done = threading.Event()

    def listener(message):
        received.append(message)
        if is_terminal(message):
            done.set()

    try:
        port = worker.connect(listener)
        port.post_message(_job()).result(timeout=5)
        assert done.wait(5)
    finally:
        worker.close()
    assert received[-1]["status"] == "complete"
    assert sum(1 for message in received if is_terminal(message)) == 1
