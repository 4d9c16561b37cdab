import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles

from asset_importer.config import settings
from asset_importer.utils.logging import configure_json_logging
from asset_importer.utils.progress import get_state, get_logs, init_job, get_pubsub
from asset_importer.utils.storage import job_paths
from asset_importer.tasks import run_import
from asset_importer.schemas import CreateImportRequest, CreateImportResponse, ImportStatusResponse


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_json_logging(settings.log_level)
    yield


app = FastAPI(title="Asset Importer API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Checkpoints double as downloadable results
results_dir = Path(settings.base_data_dir) / "results"
results_dir.mkdir(parents=True, exist_ok=True)
app.mount("/results", StaticFiles(directory=str(results_dir)), name="results")


@app.post("/imports", response_model=CreateImportResponse)
def create_import(req: CreateImportRequest) -> CreateImportResponse:
    job_id = uuid.uuid4().hex
    paths = job_paths(job_id)
    records = [item.model_dump() for item in req.media]
    paths["input"].write_text(json.dumps(records, indent=2, ensure_ascii=False), encoding="utf-8")

    options = req.options.model_dump(exclude_none=True) if req.options else {}
    init_job(job_id, len(records))
    run_import.apply_async(args=[job_id, options], task_id=job_id)
    return CreateImportResponse(jobId=job_id, total=len(records))


@app.get("/imports/{job_id}", response_model=ImportStatusResponse)
def get_import(job_id: str):
    state = get_state(job_id)
    if not state:
        raise HTTPException(status_code=404, detail="Job not found")
    logs = get_logs(job_id)
    return ImportStatusResponse(
        status=state.get("status", "QUEUED"),
        progress=int(state.get("progress", 0)),
        total=state.get("total"),
        resultUrl=state.get("result_url") or None,
        logs=logs,
        error=state.get("error") or None,
    )


@app.get("/stream/{job_id}")
async def stream_events(job_id: str):
    if not get_state(job_id):
        raise HTTPException(status_code=404, detail="Job not found")
    pubsub = get_pubsub()
    channel = f"job:{job_id}:events"
    pubsub.subscribe(channel)

    async def event_generator():
        try:
            while True:
                message = pubsub.get_message(timeout=0.0)
                if message and message.get("type") == "message":
                    data = message.get("data")
                    yield f"data: {data}\n\n"
                    event = json.loads(data)
                    # stream ends with the job
                    if event.get("type") == "status" and event.get("status") in ("DONE", "FAILED"):
                        break
                await asyncio.sleep(0.2)
        finally:
            pubsub.unsubscribe(channel)
            pubsub.close()

    return StreamingResponse(event_generator(), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})
