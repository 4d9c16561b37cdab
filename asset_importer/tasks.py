import asyncio
import json
from typing import Dict

from asset_importer.celery_app import celery_app
from asset_importer.config import settings
from asset_importer.pipeline.checkpoint import CheckpointWriter, load_checkpoint, load_descriptors
from asset_importer.pipeline.importer import BatchImporter, ImportOptions
from asset_importer.pipeline.observers import CompositeObserver, LoggingObserver
from asset_importer.providers.factory import get_asset_provider
from asset_importer.utils.logging import get_logger
from asset_importer.utils.progress import RedisProgressObserver, append_log, set_result, set_status
from asset_importer.utils.storage import job_paths, result_url


logger = get_logger(__name__)


def build_options(options: Dict | None) -> ImportOptions:
    options = options or {}
    return ImportOptions.from_settings(
        batch_size=options.get("batchSize"),
        poll_timeout=options.get("pollTimeoutSec"),
        isolate_failures=bool(options.get("isolateFailures", False)),
    )


# A retry resumes from the job's checkpoint, so only the interrupted batch is redone.
@celery_app.task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": settings.import_task_max_retries},
    name="run_import",
)
def run_import(self, job_id: str, options: Dict | None = None) -> str:
    paths = job_paths(job_id)

    try:
        set_status(job_id, "RUNNING", progress=0)
        append_log(job_id, f"Job accepted. options={json.dumps(options or {})}")

        descriptors = load_descriptors(paths["input"])
        existing = load_checkpoint(paths["checkpoint"]) if paths["checkpoint"].exists() else []

        importer = BatchImporter(
            provider=get_asset_provider(),
            writer=CheckpointWriter(paths["checkpoint"]),
            options=build_options(options),
            observer=CompositeObserver([LoggingObserver(), RedisProgressObserver(job_id)]),
        )
        results = asyncio.run(importer.run(descriptors, existing))

        set_status(job_id, "DONE", progress=100)
        url = result_url(job_id)
        set_result(job_id, url)
        append_log(job_id, f"Job completed. {len(results)} results: {url}")
        return job_id
    except Exception as e:  # noqa: BLE001
        logger.exception("import job %s failed", job_id)
        append_log(job_id, f"Error: {e}")
        set_status(job_id, "FAILED", error=str(e))
        raise
