import asyncio
import json
import random

import pytest

from asset_importer.pipeline.checkpoint import CheckpointMismatchError, CheckpointWriter, load_checkpoint
from asset_importer.pipeline.importer import BatchImporter, ImportOptions
from asset_importer.pipeline.observers import ImportObserver
from asset_importer.pipeline.upload import upload_batch
from asset_importer.providers.base import AssetProviderError
from asset_importer.schemas import MediaDescriptor


class RecordingWriter(CheckpointWriter):
    def __init__(self, path):
        super().__init__(path)
        self.writes = []

    def write(self, results):
        self.writes.append([r.source.url for r in results])
        return super().write(results)


class RecordingObserver(ImportObserver):
    def __init__(self):
        self.events = []

    def run_started(self, total, batches, resumed=0):
        self.events.append(("run_started", total, batches, resumed))

    def batch_uploaded(self, batch_index, items):
        self.events.append(("batch_uploaded", batch_index, len(items)))

    def checkpoint_written(self, path, count):
        self.events.append(("checkpoint", count))

    def run_failed(self, error):
        self.events.append(("run_failed", type(error).__name__))


def _importer(provider, path, clock, **options):
    return BatchImporter(
        provider=provider,
        writer=RecordingWriter(path),
        options=ImportOptions(**options),
        sleep=clock.sleep,
        rng=random.Random(0),
        clock=clock,
    )


def test_single_item_success(tmp_path, provider_factory, clock):
    provider = provider_factory(ids={"a": "x"}, phases={"a": ["processing", "ready"]})
    importer = _importer(provider, tmp_path / "results.json", clock)

    results = asyncio.run(importer.run([MediaDescriptor(url="a")]))

    assert len(results) == 1
    record = results[0].to_record()
    assert record["assetId"] == "x"
    assert record["success"] is True
    assert record["seconds"] > 0
    assert record["url"] == "a"
    assert "errorMessage" not in record
    assert provider.get_calls["x"] == 2


def test_failed_phase_recorded_not_raised(tmp_path, provider_factory, clock):
    provider = provider_factory(
        ids={"a": "x"},
        phases={"a": ["processing", "processing", "failed"]},
        errors={"a": "transcode error"},
    )
    importer = _importer(provider, tmp_path / "results.json", clock)

    results = asyncio.run(importer.run([MediaDescriptor(url="a", title="clip")]))

    record = results[0].to_record()
    assert record["success"] is False
    assert record["errorMessage"] == "transcode error"
    assert record["title"] == "clip"


def test_batch_boundary_writes_two_checkpoints(tmp_path, provider_factory, descriptors_factory, clock):
    descriptors = descriptors_factory(21)
    provider = provider_factory()
    path = tmp_path / "results.json"
    importer = _importer(provider, path, clock, batch_size=20)

    results = asyncio.run(importer.run(descriptors))

    writes = importer.writer.writes
    assert [len(w) for w in writes] == [20, 21]
    assert writes[0] == [d.url for d in descriptors[:20]]
    assert len(results) == 21
    assert len(load_checkpoint(path)) == 21


def test_results_follow_input_order(tmp_path, provider_factory, descriptors_factory, clock):
    descriptors = descriptors_factory(6)
    # later items finish first
    phases = {d.url: ["processing"] * (6 - i) + ["ready"] for i, d in enumerate(descriptors)}
    provider = provider_factory(phases=phases)
    importer = _importer(provider, tmp_path / "results.json", clock, batch_size=3)

    results = asyncio.run(importer.run(descriptors))

    assert [r.source.url for r in results] == [d.url for d in descriptors]


def test_concurrency_never_exceeds_batch_size(tmp_path, provider_factory, descriptors_factory, clock):
    provider = provider_factory(default_phases=["processing", "processing", "ready"])
    importer = _importer(provider, tmp_path / "results.json", clock, batch_size=5)

    asyncio.run(importer.run(descriptors_factory(23)))

    assert provider.max_creating == 5
    assert provider.max_open <= 5
    assert len(provider.created) == 23


def test_crash_after_first_checkpoint_keeps_first_batch(tmp_path, provider_factory, descriptors_factory, clock):
    descriptors = descriptors_factory(21)
    path = tmp_path / "results.json"
    provider = provider_factory(fail_create={descriptors[20].url})
    observer = RecordingObserver()
    importer = _importer(provider, path, clock, batch_size=20)
    importer.observer = observer

    with pytest.raises(AssetProviderError):
        asyncio.run(importer.run(descriptors))

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert len(on_disk) == 20
    assert ("run_failed", "AssetProviderError") in observer.events

    # a plain re-run does not look at the checkpoint and redoes everything
    rerun_provider = provider_factory()
    rerun = _importer(rerun_provider, path, clock, batch_size=20)
    results = asyncio.run(rerun.run(descriptors))
    assert len(rerun_provider.created) == 21
    assert len(results) == 21


def test_resume_skips_checkpointed_prefix(tmp_path, provider_factory, descriptors_factory, clock):
    descriptors = descriptors_factory(21)
    path = tmp_path / "results.json"
    first = _importer(provider_factory(fail_create={descriptors[20].url}), path, clock, batch_size=20)
    with pytest.raises(AssetProviderError):
        asyncio.run(first.run(descriptors))

    provider = provider_factory()
    resumed = _importer(provider, path, clock, batch_size=20)
    results = asyncio.run(resumed.run(descriptors, load_checkpoint(path)))

    assert provider.created == [descriptors[20].url]
    assert [r.source.url for r in results] == [d.url for d in descriptors]
    assert len(load_checkpoint(path)) == 21


def test_resume_rejects_foreign_checkpoint(tmp_path, provider_factory, descriptors_factory, clock):
    path = tmp_path / "results.json"
    asyncio.run(_importer(provider_factory(), path, clock).run(descriptors_factory(2, prefix="old")))

    importer = _importer(provider_factory(), path, clock)
    with pytest.raises(CheckpointMismatchError):
        asyncio.run(importer.run(descriptors_factory(3, prefix="new"), load_checkpoint(path)))


def test_upload_failure_aborts_batch_without_polling(tmp_path, provider_factory, descriptors_factory, clock):
    descriptors = descriptors_factory(3)
    provider = provider_factory(fail_create={descriptors[1].url})
    path = tmp_path / "results.json"
    importer = _importer(provider, path, clock)

    with pytest.raises(AssetProviderError):
        asyncio.run(importer.run(descriptors))

    assert provider.get_calls == {}
    assert not path.exists()


def test_isolate_failures_records_bad_items(tmp_path, provider_factory, descriptors_factory, clock):
    descriptors = descriptors_factory(4)
    provider = provider_factory(fail_create={descriptors[1].url}, fail_get={descriptors[2].url})
    importer = _importer(provider, tmp_path / "results.json", clock, isolate_failures=True)

    results = asyncio.run(importer.run(descriptors))

    assert [r.success for r in results] == [True, False, False, True]
    assert results[1].assetId is None
    assert "cannot import" in results[1].errorMessage
    assert results[2].assetId is not None
    assert "status lookup failed" in results[2].errorMessage


def test_stop_event_between_batches(tmp_path, provider_factory, descriptors_factory, clock):
    from asset_importer.pipeline.polling import ImportCancelledError

    class StopAfterFirstCheckpoint(ImportObserver):
        def __init__(self, event):
            self.event = event

        def checkpoint_written(self, path, count):
            self.event.set()

    async def scenario(path):
        stop = asyncio.Event()
        importer = BatchImporter(
            provider=provider_factory(),
            writer=CheckpointWriter(path),
            options=ImportOptions(batch_size=2),
            observer=StopAfterFirstCheckpoint(stop),
            sleep=clock.sleep,
            clock=clock,
            stop_event=stop,
        )
        await importer.run(descriptors_factory(5))

    path = tmp_path / "results.json"
    with pytest.raises(ImportCancelledError):
        asyncio.run(scenario(path))
    assert len(load_checkpoint(path)) == 2


def test_checkpoint_write_failure_is_fatal(tmp_path, provider_factory, descriptors_factory, clock):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    importer = _importer(provider_factory(), blocker / "results.json", clock)

    with pytest.raises(OSError):
        asyncio.run(importer.run(descriptors_factory(2)))


def test_observer_sees_each_batch(tmp_path, provider_factory, descriptors_factory, clock):
    observer = RecordingObserver()
    importer = _importer(provider_factory(), tmp_path / "results.json", clock, batch_size=4)
    importer.observer = observer

    asyncio.run(importer.run(descriptors_factory(9)))

    assert observer.events[0] == ("run_started", 9, 3, 0)
    assert [e for e in observer.events if e[0] == "checkpoint"] == [
        ("checkpoint", 4),
        ("checkpoint", 8),
        ("checkpoint", 9),
    ]


def test_empty_input_writes_nothing(tmp_path, provider_factory, clock):
    path = tmp_path / "results.json"
    results = asyncio.run(_importer(provider_factory(), path, clock).run([]))
    assert results == []
    assert not path.exists()


def test_options_from_settings_overrides():
    options = ImportOptions.from_settings(batch_size=5, poll_timeout=None, isolate_failures=True)
    assert options.batch_size == 5
    assert options.isolate_failures is True
    policy = options.poll_policy()
    assert policy.min_interval <= policy.max_interval


def test_aborted_batch_stops_polling_siblings(tmp_path, provider_factory, clock):
    provider = provider_factory(phases={"a": ["processing"]}, fail_get={"b"})
    importer = _importer(provider, tmp_path / "results.json", clock)

    async def scenario():
        with pytest.raises(AssetProviderError):
            await importer.run([MediaDescriptor(url="a"), MediaDescriptor(url="b")])
        calls_at_abort = dict(provider.get_calls)
        for _ in range(200):
            await asyncio.sleep(0)
        return calls_at_abort

    calls_at_abort = asyncio.run(scenario())

    assert provider.get_calls == calls_at_abort


def test_failed_create_cancels_sibling_creates(provider_factory):
    class SlowCreateProvider(provider_factory):
        async def create_asset(self, descriptor):
            if descriptor.url == "slow":
                for _ in range(50):
                    await asyncio.sleep(0)
            return await super().create_asset(descriptor)

    provider = SlowCreateProvider(fail_create={"bad"})

    async def scenario():
        with pytest.raises(AssetProviderError):
            await upload_batch(provider, [MediaDescriptor(url="slow"), MediaDescriptor(url="bad")])
        for _ in range(100):
            await asyncio.sleep(0)

    asyncio.run(scenario())

    assert provider.created == []


def test_empty_error_message_is_dropped(tmp_path, provider_factory, clock):
    provider = provider_factory(phases={"a": ["processing", "failed"]}, errors={"a": ""})
    importer = _importer(provider, tmp_path / "results.json", clock)

    results = asyncio.run(importer.run([MediaDescriptor(url="a")]))

    record = results[0].to_record()
    assert record["success"] is False
    assert "errorMessage" not in record
    assert "errorMessage" not in load_checkpoint(tmp_path / "results.json")[0].to_record()


def test_ready_status_keeps_its_error_message(tmp_path, provider_factory, clock):
    provider = provider_factory(phases={"a": ["ready"]}, errors={"a": "audio track missing"})
    importer = _importer(provider, tmp_path / "results.json", clock)

    results = asyncio.run(importer.run([MediaDescriptor(url="a")]))

    record = results[0].to_record()
    assert record["success"] is True
    assert record["errorMessage"] == "audio track missing"


def test_resumed_run_reports_checkpointed_count(tmp_path, provider_factory, descriptors_factory, clock):
    descriptors = descriptors_factory(5)
    path = tmp_path / "results.json"
    asyncio.run(_importer(provider_factory(), path, clock, batch_size=3).run(descriptors[:3]))

    observer = RecordingObserver()
    importer = _importer(provider_factory(), path, clock, batch_size=3)
    importer.observer = observer
    asyncio.run(importer.run(descriptors, load_checkpoint(path)))

    assert observer.events[0] == ("run_started", 2, 1, 3)
