from pathlib import Path
from typing import Tuple

from asset_importer.config import settings


def ensure_job_dirs(job_id: str) -> Tuple[Path, Path]:
    base = Path(settings.base_data_dir)
    work = base / "work" / job_id
    results = base / "results" / job_id
    work.mkdir(parents=True, exist_ok=True)
    results.mkdir(parents=True, exist_ok=True)
    return work, results


def job_paths(job_id: str) -> dict:
    work, results = ensure_job_dirs(job_id)
    return {
        "work": work,
        "results": results,
        "input": work / "input.json",
        "options": work / "options.json",
        "checkpoint": results / "results.json",
    }


def result_url(job_id: str) -> str:
    return f"{settings.results_base_url.rstrip('/')}/{job_id}/results.json"
