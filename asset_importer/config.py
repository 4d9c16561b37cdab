import os
from typing import Optional

try:
    # Load environment variables from .env if present (for local runs)
    from dotenv import load_dotenv, find_dotenv  # type: ignore

    load_dotenv(find_dotenv(usecwd=True))
except ImportError:
    pass


def _default_redis_url() -> str:
    """Use container hostname inside Docker, localhost when running locally."""
    in_docker = os.path.exists("/.dockerenv") or os.getenv("IN_DOCKER") == "1"
    return "redis://redis:6379/0" if in_docker else "redis://localhost:6379/0"


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


class Settings:
    asset_provider: str = os.getenv("ASSET_PROVIDER", "livepeer").lower()
    livepeer_api_key: Optional[str] = os.getenv("LIVEPEER_API_KEY")
    livepeer_api_url: str = os.getenv("LIVEPEER_API_URL", "https://livepeer.studio/api")
    request_timeout_sec: float = float(os.getenv("REQUEST_TIMEOUT_SEC", "30"))
    batch_size: int = int(os.getenv("BATCH_SIZE", "20"))
    poll_min_interval_sec: float = float(os.getenv("POLL_MIN_INTERVAL_SEC", "0.2"))
    poll_max_interval_sec: float = float(os.getenv("POLL_MAX_INTERVAL_SEC", "0.5"))
    poll_timeout_sec: Optional[float] = _optional_float("POLL_TIMEOUT_SEC")
    simulated_polls_until_ready: int = int(os.getenv("SIMULATED_POLLS_UNTIL_READY", "2"))
    input_path: str = os.getenv("INPUT_PATH", "output.json")
    output_path: str = os.getenv("OUTPUT_PATH", "results.json")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    redis_url: str = os.getenv("REDIS_URL", _default_redis_url())
    base_data_dir: str = os.getenv("DATA_DIR", "/app/data")
    results_base_url: str = os.getenv("RESULTS_BASE_URL", "/results")
    cors_origins: str = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    import_task_max_retries: int = int(os.getenv("IMPORT_TASK_MAX_RETRIES", "2"))


settings = Settings()
