"""
Retouch Worker

Main entry point for the background worker.
Polls Redis for generation jobs and runs the edit pipeline for each one.
"""

import asyncio
import base64
import logging
import signal
import sys
import time
from typing import Any

import httpx
from rich.console import Console
from rich.logging import RichHandler

from .config import MODEL_PRESETS, get_settings
from .metrics import jobs_in_progress, record_job, start_metrics_server
from .pipeline import PipelineOrchestrator, ProgressChannel, selections_from_options
from .queue import get_queue_client
from .schemas import AnalysisResult, FixOptions, FixSelection, PipelineProgress, VariationResult
from .shared.templates import get_default_template, get_template
from .storage import get_storage_client

logger = logging.getLogger(__name__)
console = Console()

# Global flag for graceful shutdown
shutdown_requested = False


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    global shutdown_requested
    logger.info("Shutdown signal received, finishing current job...")
    shutdown_requested = True


def sync_job_status(
    job_id: str,
    status: str,
    progress: int | None = None,
    current_step: str | None = None,
    error_message: str | None = None,
) -> bool:
    """
    Push job status to the web API so the UI can show live progress.

    Does nothing when no API URL is configured.
    """
    settings = get_settings()
    if not settings.api_url:
        return False

    payload = {"status": status}
    if progress is not None:
        payload["progress"] = progress
    if current_step is not None:
        payload["current_step"] = current_step
    if error_message is not None:
        payload["error_message"] = error_message

    try:
        with httpx.Client(timeout=10.0) as client:
            response = client.patch(
                f"{settings.api_url}/api/generations/{job_id}",
                json=payload,
            )
            response.raise_for_status()
            return True
    except Exception as e:
        logger.warning(f"Failed to sync job status: {e}")
        return False


def parse_fix_selections(params: dict[str, Any]) -> list[FixSelection] | None:
    """
    Read the requested fixes from job parameters.

    Accepts either ``fix_selections`` (a list of ``{editType, enabled,
    templateId, customPrompt}``) or the legacy ``fixes`` boolean bag.

    Raises:
        ValueError: On an unknown issue type or template id
    """
    if params.get("fix_selections") is not None:
        selections = []
        for item in params["fix_selections"]:
            edit_type = item["editType"]
            template_id = item.get("templateId")
            template = get_template(edit_type, template_id) if template_id else get_default_template(edit_type)
            selections.append(FixSelection(
                edit_type=edit_type,
                enabled=item.get("enabled", True),
                template=template,
                custom_prompt=item.get("customPrompt"),
            ))
        return selections

    if params.get("fixes") is not None:
        return selections_from_options(FixOptions.model_validate(params["fixes"]))

    return None


def load_source_image(params: dict[str, Any], storage) -> bytes:
    """Source image from storage (``image_key``) or inline base64 (``image``)."""
    if params.get("image_key"):
        return storage.download_bytes(params["image_key"])
    if params.get("image"):
        data = params["image"]
        if data.startswith("data:"):
            data = data.split(",", 1)[1]
        return base64.b64decode(data)
    raise ValueError("Job has no source image")


async def run_generation(
    job_id: str,
    user_id: str,
    image: bytes,
    selections: list[FixSelection] | None,
    params: dict[str, Any],
    queue,
    storage,
    orchestrator: PipelineOrchestrator,
):
    """Run one generation request, streaming progress to Redis and the API."""
    channel = ProgressChannel()

    def report(snapshot: PipelineProgress):
        queue.update_progress(job_id, snapshot)
        sync_job_status(job_id, "processing", snapshot.overall_progress, snapshot.message)

    async def drain_progress():
        async for snapshot in channel:
            await asyncio.to_thread(report, snapshot)

    async def upload(data: bytes, slot: int) -> str:
        return await asyncio.to_thread(storage.upload_variation, data, user_id, job_id, slot)

    async def log_variation(result: VariationResult):
        outcome = "ready" if result.success else f"failed: {result.error}"
        level = "info" if result.success else "warning"
        await asyncio.to_thread(queue.add_log, job_id, f"Variation {result.index + 1} {outcome}", level)

    analysis = params.get("analysis")
    consumer = asyncio.create_task(drain_progress())
    try:
        return await orchestrator.generate(
            image,
            selections,
            upload_fn=upload,
            num_variations=params.get("num_variations"),
            analysis_override=AnalysisResult.model_validate(analysis) if analysis else None,
            progress_sink=channel,
            on_variation=log_variation,
        )
    finally:
        channel.close()
        await consumer


def process_generation_job(job: dict, queue, storage, orchestrator: PipelineOrchestrator | None = None) -> dict:
    """
    Process a generation job.

    1. Download the source photo
    2. Analyze it once and run K variation pipelines
    3. Upload each successful variation
    4. Return the GenerationResult as camelCase JSON
    """
    job_id = job["id"]
    params = job.get("parameters", {})
    user_id = params.get("user_id", "anonymous")

    logger.info(f"Processing generation job {job_id} for user {user_id}")
    queue.add_log(job_id, "Downloading source image")

    image = load_source_image(params, storage)
    selections = parse_fix_selections(params)

    result = asyncio.run(run_generation(
        job_id, user_id, image, selections, params, queue, storage,
        orchestrator or PipelineOrchestrator(),
    ))

    succeeded = sum(1 for v in result.variations if v.success)
    queue.add_log(job_id, f"Generated {succeeded}/{len(result.variations)} variations in {result.total_time_ms}ms")
    return result.model_dump(mode="json", by_alias=True)


def process_job(job: dict, queue, storage) -> dict | None:
    """
    Process a job based on its type.
    """
    job_type = job.get("type")

    if job_type == "generate":
        return process_generation_job(job, queue, storage)
    else:
        logger.warning(f"Unknown job type: {job_type}")
        return None


def finish_job(job_id: str, result: dict | None, queue, started_at: float) -> str:
    """
    Record the outcome of a processed job in Redis, metrics and the web API.

    A generation where every variation fell back is reported as failed; its
    fallback results are still stored on the job.

    Returns:
        Final job status
    """
    duration = time.time() - started_at

    if result is not None and result.get("success") is False:
        error_msg = "All variations failed"
        queue.complete_job(job_id, result=result, error=error_msg)
        record_job("failed", duration)
        sync_job_status(job_id, "failed", progress=100, current_step="Failed", error_message=error_msg)
        return "failed"

    queue.complete_job(job_id, result=result)
    record_job("completed", duration)
    sync_job_status(job_id, "completed", progress=100, current_step="Complete")
    return "completed"


def main():
    """Main worker loop."""
    global shutdown_requested

    settings = get_settings()
    configure_logging(settings.log_level)

    # Setup signal handlers
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    preset = MODEL_PRESETS.get(settings.model_preset, MODEL_PRESETS["flash"])
    console.print("[bold green]Retouch Worker[/bold green]")
    console.print(f"Worker ID: {settings.worker_id}")
    console.print(f"Models: {preset['description']}")
    console.print(f"Variations: {settings.parallel_pipelines}, retries per step: {settings.max_retries_per_step}")
    console.print(f"API: {settings.api_url or '(status sync disabled)'}")
    console.print(f"Redis: {settings.redis_url}")
    console.print("")

    start_metrics_server(port=settings.metrics_port, worker_id=settings.worker_id)
    console.print(f"Metrics: http://localhost:{settings.metrics_port}/metrics")
    console.print("")

    queue = get_queue_client()
    storage = get_storage_client()

    if not queue.health_check():
        logger.error("Failed to connect to Redis")
        sys.exit(1)

    logger.info("Connected to Redis")
    logger.info("Starting job polling loop...")

    while not shutdown_requested:
        try:
            job = queue.dequeue()

            if job is None:
                time.sleep(settings.poll_interval)
                continue

            job_id = job["id"]
            job_type = job.get("type", "unknown")
            logger.info(f"Processing job {job_id} (type={job_type})")

            jobs_in_progress.set(1)
            job_start_time = time.time()
            sync_job_status(job_id, "processing", progress=0, current_step="Starting...")

            try:
                result = process_job(job, queue, storage)
                finish_job(job_id, result, queue, job_start_time)

            except Exception as e:
                error_msg = str(e)
                logger.error(f"Job {job_id} failed: {error_msg}")
                queue.complete_job(job_id, error=error_msg)
                record_job("failed")
                sync_job_status(job_id, "failed", error_message=error_msg)

            finally:
                jobs_in_progress.set(0)

        except KeyboardInterrupt:
            break
        except Exception as e:
            logger.error(f"Worker error: {e}")
            time.sleep(5)

    logger.info("Worker shutdown complete")


if __name__ == "__main__":
    main()
