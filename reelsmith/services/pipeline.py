"""
Pipeline orchestrator.

Drives one composition job end to end:
1. Resolve the audio, overlay and flow assets to local files
2. Compose the base video with the strategy for the request's flow type
3. Blend video overlays
4. Burn in captions when requested
5. Record the result (or the failure) on the job
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Callable

import pydantic

from reelsmith.config import Settings, get_settings
from reelsmith.exceptions import AssetResolutionError, ReelsmithError, ValidationError
from reelsmith.render.composition import CompositionEngine
from reelsmith.render.overlay_compositor import OverlayCompositor
from reelsmith.render.runner import FFmpegRunner
from reelsmith.schemas.composition import (
    CompositionRequest,
    MultiImageRequest,
    Overlay,
    SingleImageRequest,
    StockVideoRequest,
    parse_composition_request,
)
from reelsmith.schemas.job import Job, JobPatch, JobResult, JobStatus
from reelsmith.services.asset_resolver import AssetResolver
from reelsmith.services.caption_service import CaptionService, get_caption_style
from reelsmith.services.file_service import FileService
from reelsmith.services.job_registry import JobRegistry
from reelsmith.services.job_store import create_job_store

logger = logging.getLogger(__name__)

START_PROGRESS = 10
POST_PROCESS_PROGRESS = 90
MAX_RUNNING_PROGRESS = 99


class PipelineOrchestrator:
    def __init__(
        self,
        registry: JobRegistry,
        resolver: AssetResolver,
        engine: CompositionEngine,
        compositor: OverlayCompositor,
        captions: CaptionService,
        file_service: FileService,
    ):
        self.registry = registry
        self.resolver = resolver
        self.engine = engine
        self.compositor = compositor
        self.captions = captions
        self.file_service = file_service
        self._tasks: set[asyncio.Task] = set()

    def validate(self, request: CompositionRequest | dict[str, Any]) -> CompositionRequest:
        """Reject malformed requests before a job is created."""
        if isinstance(request, dict):
            try:
                request = parse_composition_request(request)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Invalid composition request: {e}") from e

        if request.captions_enabled:
            if not (request.script and request.script.strip()) and not request.word_timestamps:
                raise ValidationError(
                    "Captions require a script or word timestamps", field="script"
                )
            get_caption_style(request.caption_style)
        return request

    def submit(self, request: CompositionRequest | dict[str, Any], job_id: str | None = None) -> str:
        """Create a job and start it in the background. Returns immediately."""
        validated = self.validate(request)
        job_id = job_id or str(uuid.uuid4())
        self.registry.create(job_id)
        task = asyncio.create_task(self.run(job_id, validated))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job_id

    async def wait_for(self, job_id: str) -> Job:
        """Wait for every in-flight job task, then return the job snapshot."""
        await asyncio.to_thread(self.registry.require, job_id)
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
        return await asyncio.to_thread(self.registry.require, job_id)

    async def _update(self, job_id: str, patch: JobPatch) -> Job | None:
        # Store backends may do blocking I/O, so keep them off the event loop
        return await asyncio.to_thread(self.registry.update, job_id, patch)

    async def _drain(self, pending: list[asyncio.Task]) -> None:
        """Wait for queued progress writes so they land before the final status."""
        results = await asyncio.gather(*pending, return_exceptions=True)
        pending.clear()
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"[PIPELINE] Progress update failed: {result}")

    def _progress_mapper(
        self, job_id: str, low: int, high: int, pending: list[asyncio.Task]
    ) -> Callable[[int, str], None]:
        def report(pct: int, stage: str) -> None:
            progress = min(MAX_RUNNING_PROGRESS, low + (high - low) * pct // 100)
            pending.append(asyncio.create_task(self._update(job_id, JobPatch(progress=progress, message=stage))))

        return report

    async def run(self, job_id: str, request: CompositionRequest) -> Job | None:
        await self._update(
            job_id,
            JobPatch(status=JobStatus.PROCESSING, progress=START_PROGRESS, message="Resolving assets"),
        )
        pending: list[asyncio.Task] = []
        try:
            resolved = await self._resolve_request(request, job_id)

            has_video_overlays = any(o.type == "video" for o in resolved.overlays)
            compose_high = (
                POST_PROCESS_PROGRESS
                if has_video_overlays or resolved.captions_enabled
                else MAX_RUNNING_PROGRESS
            )
            final_path = await self.engine.compose(
                resolved,
                on_progress=self._progress_mapper(job_id, START_PROGRESS, compose_high, pending),
                job_id=job_id,
            )

            if has_video_overlays:
                final_path = await self.compositor.apply_overlays(
                    final_path,
                    resolved.overlays,
                    on_progress=self._progress_mapper(
                        job_id, POST_PROCESS_PROGRESS, MAX_RUNNING_PROGRESS, pending
                    ),
                    job_id=job_id,
                )

            if resolved.captions_enabled:
                await self._drain(pending)
                final_path = await self._burn_captions(final_path, resolved, job_id)

            result = JobResult(
                video_path=str(final_path),
                size_bytes=final_path.stat().st_size,
                video_url=self.file_service.temp_url(final_path),
            )
            await self._drain(pending)
            await self._update(
                job_id,
                JobPatch(status=JobStatus.COMPLETED, progress=100, result=result, message="Video generated"),
            )
            self.file_service.cleanup_job_files(job_id, keep={final_path})
            logger.info(f"[PIPELINE] Job {job_id} completed: {final_path.name} ({result.size_bytes} bytes)")
        except Exception as e:
            code = e.code if isinstance(e, ReelsmithError) else "INTERNAL_ERROR"
            logger.exception(f"[PIPELINE] Job {job_id} failed: {e}")
            await self._drain(pending)
            await self._update(
                job_id,
                JobPatch(status=JobStatus.FAILED, error=str(e), error_code=code, message="Video generation failed"),
            )
            self.file_service.cleanup_job_files(job_id)
        return await asyncio.to_thread(self.registry.get, job_id)

    async def _burn_captions(self, video_path: Path, request: CompositionRequest, job_id: str) -> Path:
        await self._update(job_id, JobPatch(message="Burning captions"))
        caption_result = self.captions.generate(
            request.script or "",
            request.audio_duration,
            style=request.caption_style,
            word_timestamps=request.word_timestamps,
        )
        subtitle_path = self.captions.save_caption_file(
            caption_result.segments, request.caption_style, "ass", job_id
        )
        return await self.engine.burn_captions(video_path, subtitle_path, job_id)

    async def _resolve_overlays(self, overlays: list[Overlay], job_id: str) -> list[Overlay]:
        resolved: list[Overlay] = []
        for overlay in overlays:
            if overlay.type != "video":
                # Carried through so the compositor can report it as skipped
                resolved.append(overlay)
                continue
            try:
                path = await self.resolver.resolve(overlay.file_path, job_id)
            except AssetResolutionError as e:
                logger.warning(f"[PIPELINE] Dropping overlay {overlay.name or overlay.file_path}: {e}")
                continue
            resolved.append(overlay.model_copy(update={"file_path": str(path)}))
        return resolved

    async def _resolve_request(self, request: CompositionRequest, job_id: str) -> CompositionRequest:
        audio_path = await self.resolver.resolve(request.audio_path, job_id)
        overlays = await self._resolve_overlays(request.overlays, job_id)
        update: dict[str, Any] = {"audio_path": str(audio_path), "overlays": overlays}

        if isinstance(request, SingleImageRequest):
            update["image"] = str(await self.resolver.resolve(request.image, job_id))
        elif isinstance(request, MultiImageRequest):
            update["images"] = [
                slide.model_copy(update={"image": str(await self.resolver.resolve(slide.image, job_id))})
                for slide in request.images
            ]
        elif isinstance(request, StockVideoRequest):
            update["videos"] = [
                clip.model_copy(update={"video": str(await self.resolver.resolve(clip.video, job_id))})
                for clip in request.videos
            ]
        return request.model_copy(update=update)


def build_pipeline(settings: Settings | None = None) -> PipelineOrchestrator:
    """Wire the default pipeline from settings."""
    settings = settings or get_settings()
    file_service = FileService(settings)
    runner = FFmpegRunner(settings)
    return PipelineOrchestrator(
        registry=JobRegistry(create_job_store(settings)),
        resolver=AssetResolver(file_service, settings),
        engine=CompositionEngine(runner, file_service, settings),
        compositor=OverlayCompositor(runner, file_service, settings),
        captions=CaptionService(file_service),
        file_service=file_service,
    )
