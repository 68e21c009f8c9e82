"""Tests for the pipeline orchestrator with the render stage faked out."""

import threading
from pathlib import Path

import pytest

from reelsmith.exceptions import JobNotFoundError, TranscodeError, ValidationError
from reelsmith.schemas.composition import SingleImageRequest
from reelsmith.schemas.job import Job, JobStatus
from reelsmith.services.asset_resolver import AssetResolver
from reelsmith.services.caption_service import CaptionService
from reelsmith.services.job_registry import JobRegistry
from reelsmith.services.job_store import InMemoryJobStore, SqlJobStore
from reelsmith.services.pipeline import PipelineOrchestrator, build_pipeline


class FakeEngine:
    """Stands in for CompositionEngine; writes small files instead of rendering."""

    def __init__(self, file_service, error: Exception | None = None):
        self.file_service = file_service
        self.error = error
        self.requests = []
        self.burned: list[tuple[Path, Path]] = []

    async def compose(self, request, on_progress, job_id):
        self.requests.append(request)
        if self.error:
            raise self.error
        scratch = self.file_service.temp_file_path("mp4", job_id)
        scratch.write_bytes(b"intermediate")
        on_progress(50, "Rendering")
        on_progress(100, "Rendered")
        output = self.file_service.temp_file_path("mp4", job_id)
        output.write_bytes(b"composed-video")
        return output

    async def burn_captions(self, video_path, subtitle_path, job_id):
        self.burned.append((video_path, Path(subtitle_path)))
        output = self.file_service.temp_file_path("mp4", job_id)
        output.write_bytes(b"captioned-video")
        return output


class RecordingRegistry(JobRegistry):
    """Records every progress value written through update()."""

    def __init__(self, store):
        super().__init__(store)
        self.progress_written: list[int] = []

    def update(self, job_id, patch):
        if getattr(patch, "progress", None) is not None:
            self.progress_written.append(patch.progress)
        return super().update(job_id, patch)


class ThreadRecordingStore(InMemoryJobStore):
    """Records the thread each save() runs on."""

    def __init__(self):
        super().__init__()
        self.save_threads: list[int] = []

    def save(self, job: Job) -> Job:
        self.save_threads.append(threading.get_ident())
        return super().save(job)


class FakeCompositor:
    def __init__(self, file_service):
        self.file_service = file_service
        self.overlays = None

    async def apply_overlays(self, base, overlays, on_progress, job_id):
        self.overlays = overlays
        on_progress(100, "Overlays applied")
        output = self.file_service.temp_file_path("mp4", job_id)
        output.write_bytes(b"overlaid-video")
        return output


@pytest.fixture
def uploads(file_service) -> Path:
    (file_service.uploads_dir / "voice.mp3").write_bytes(b"audio")
    (file_service.uploads_dir / "cover.png").write_bytes(b"image")
    (file_service.temp_dir / "glow.mp4").write_bytes(b"overlay")
    return file_service.uploads_dir


@pytest.fixture
def engine(file_service) -> FakeEngine:
    return FakeEngine(file_service)


@pytest.fixture
def compositor(file_service) -> FakeCompositor:
    return FakeCompositor(file_service)


@pytest.fixture
def orchestrator(file_service, settings, engine, compositor) -> PipelineOrchestrator:
    registry = RecordingRegistry(InMemoryJobStore())
    return PipelineOrchestrator(
        registry=registry,
        resolver=AssetResolver(file_service, settings),
        engine=engine,
        compositor=compositor,
        captions=CaptionService(file_service),
        file_service=file_service,
    )


def _payload(**extra) -> dict:
    payload = {
        "flowType": "single-image",
        "audioPath": "/uploads/voice.mp3",
        "audioDuration": 12.0,
        "image": "/uploads/cover.png",
    }
    payload.update(extra)
    return payload


async def _run(orchestrator: PipelineOrchestrator, payload: dict, job_id: str = "job-1"):
    request = orchestrator.validate(payload)
    orchestrator.registry.create(job_id)
    return await orchestrator.run(job_id, request)


class TestValidate:
    def test_parses_camel_case_payload(self, orchestrator):
        request = orchestrator.validate(_payload())
        assert isinstance(request, SingleImageRequest)
        assert request.audio_duration == 12.0

    def test_unknown_flow_type(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.validate(_payload(flowType="slideshow"))

    def test_missing_image(self, orchestrator):
        payload = _payload()
        del payload["image"]
        with pytest.raises(ValidationError):
            orchestrator.validate(payload)

    def test_captions_need_script_or_timestamps(self, orchestrator):
        with pytest.raises(ValidationError) as exc_info:
            orchestrator.validate(_payload(captionsEnabled=True))
        assert exc_info.value.field == "script"

    def test_unknown_caption_preset(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.validate(_payload(captionsEnabled=True, script="Hi.", captionStyle="neon-rave"))


class TestRun:
    @pytest.mark.asyncio
    async def test_success_completes_with_result(self, orchestrator, engine, uploads, file_service):
        job = await _run(orchestrator, _payload())

        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.error is None
        final = Path(job.result.video_path)
        assert final.read_bytes() == b"composed-video"
        assert job.result.size_bytes == len(b"composed-video")
        assert job.result.video_url == f"/temp/{final.name}"

        resolved = engine.requests[0]
        assert Path(resolved.audio_path) == uploads / "voice.mp3"
        assert Path(resolved.image) == uploads / "cover.png"

        # Intermediates are removed, the final video is kept
        leftovers = [p for p in file_service.temp_dir.glob("*.mp4") if p.name != "glow.mp4"]
        assert leftovers == [final]

    @pytest.mark.asyncio
    async def test_progress_mapped_into_running_range(self, orchestrator, uploads):
        await _run(orchestrator, _payload())
        # 50% of the 10..99 compose range
        assert 54 in orchestrator.registry.progress_written
        assert max(orchestrator.registry.progress_written) == 100

    @pytest.mark.asyncio
    async def test_progress_leaves_room_for_post_processing(self, orchestrator, uploads):
        await _run(orchestrator, _payload(captionsEnabled=True, script="Hello there."))
        # 50% of the 10..90 compose range
        assert 50 in orchestrator.registry.progress_written
        assert 54 not in orchestrator.registry.progress_written

    @pytest.mark.asyncio
    async def test_store_writes_run_off_the_event_loop_thread(
        self, file_service, settings, engine, compositor, uploads
    ):
        store = ThreadRecordingStore()
        orchestrator = PipelineOrchestrator(
            registry=JobRegistry(store),
            resolver=AssetResolver(file_service, settings),
            engine=engine,
            compositor=compositor,
            captions=CaptionService(file_service),
            file_service=file_service,
        )
        orchestrator.registry.create("job-1")
        loop_thread = threading.get_ident()
        store.save_threads.clear()

        job = await orchestrator.run("job-1", orchestrator.validate(_payload()))

        assert job.status == JobStatus.COMPLETED
        assert store.save_threads
        assert loop_thread not in store.save_threads

    @pytest.mark.asyncio
    async def test_success_with_sql_store(self, file_service, settings, engine, compositor, uploads, tmp_path):
        orchestrator = PipelineOrchestrator(
            registry=JobRegistry(SqlJobStore(f"sqlite:///{tmp_path / 'jobs.db'}")),
            resolver=AssetResolver(file_service, settings),
            engine=engine,
            compositor=compositor,
            captions=CaptionService(file_service),
            file_service=file_service,
        )
        orchestrator.registry.create("job-1")

        job = await orchestrator.run("job-1", orchestrator.validate(_payload()))

        assert job.status == JobStatus.COMPLETED
        assert job.error is None
        assert Path(job.result.video_path).read_bytes() == b"composed-video"

    @pytest.mark.asyncio
    async def test_compose_failure_marks_job_failed(self, orchestrator, engine, uploads, file_service):
        engine.error = TranscodeError("ffmpeg exited with code 1", stderr="boom", returncode=1)

        job = await _run(orchestrator, _payload())

        assert job.status == JobStatus.FAILED
        assert job.error_code == "TRANSCODE_FAILED"
        assert "ffmpeg exited with code 1" in job.error
        assert job.result is None
        assert file_service.tracked_files("job-1") == []

    @pytest.mark.asyncio
    async def test_missing_audio_fails_before_compose(self, orchestrator, engine, uploads):
        job = await _run(orchestrator, _payload(audioPath="/uploads/nowhere.mp3"))

        assert job.status == JobStatus.FAILED
        assert job.error_code == "ASSET_NOT_FOUND"
        assert "nowhere.mp3" in job.error
        assert engine.requests == []

    @pytest.mark.asyncio
    async def test_unexpected_error_uses_internal_code(self, orchestrator, engine, uploads):
        engine.error = RuntimeError("disk on fire")
        job = await _run(orchestrator, _payload())
        assert job.status == JobStatus.FAILED
        assert job.error_code == "INTERNAL_ERROR"

    @pytest.mark.asyncio
    async def test_unresolvable_overlay_is_dropped(self, orchestrator, compositor, uploads, file_service):
        overlays = [
            {"type": "video", "filePath": "/temp/glow.mp4", "blendMode": "screen", "opacity": 0.5},
            {"type": "video", "filePath": "/temp/missing.mp4"},
            {"type": "image", "filePath": "/uploads/cover.png"},
        ]

        job = await _run(orchestrator, _payload(overlays=overlays))

        assert job.status == JobStatus.COMPLETED
        assert [o.type for o in compositor.overlays] == ["video", "image"]
        assert Path(compositor.overlays[0].file_path) == file_service.temp_dir / "glow.mp4"
        assert compositor.overlays[0].blend_mode == "screen"
        assert Path(job.result.video_path).read_bytes() == b"overlaid-video"

    @pytest.mark.asyncio
    async def test_image_only_overlays_skip_compositor(self, orchestrator, compositor, uploads):
        overlays = [{"type": "image", "filePath": "/uploads/cover.png"}]
        job = await _run(orchestrator, _payload(overlays=overlays))
        assert job.status == JobStatus.COMPLETED
        assert compositor.overlays is None

    @pytest.mark.asyncio
    async def test_captions_burned_from_script(self, orchestrator, engine, uploads):
        job = await _run(
            orchestrator,
            _payload(captionsEnabled=True, script="Hello there. General Kenobi.", captionStyle="dramatic"),
        )

        assert job.status == JobStatus.COMPLETED
        assert len(engine.burned) == 1
        _, subtitle_path = engine.burned[0]
        assert subtitle_path.suffix == ".ass"
        assert Path(job.result.video_path).read_bytes() == b"captioned-video"
        # Subtitle file is an intermediate and is cleaned up
        assert not subtitle_path.exists()


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_returns_immediately_then_completes(self, orchestrator, uploads):
        job_id = orchestrator.submit(_payload())

        queued = orchestrator.registry.get(job_id)
        assert queued.status == JobStatus.QUEUED
        assert queued.progress == 0

        job = await orchestrator.wait_for(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100

    @pytest.mark.asyncio
    async def test_submit_rejects_invalid_request_without_creating_job(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.submit(_payload(audioDuration=0), job_id="bad-job")
        assert orchestrator.registry.get("bad-job") is None

    @pytest.mark.asyncio
    async def test_wait_for_unknown_job(self, orchestrator):
        with pytest.raises(JobNotFoundError):
            await orchestrator.wait_for("nope")


class TestBuildPipeline:
    def test_wires_components_from_settings(self, settings):
        pipeline = build_pipeline(settings)
        assert pipeline.file_service.temp_dir == Path(settings.temp_path)
        assert pipeline.registry.list() == []
