from pathlib import Path
import os

from dotenv import dotenv_values, load_dotenv

# Load .env once at import for local/dev runs.
load_dotenv()

ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = ROOT / "config"
DATA_DIR = ROOT / "data"
DEFAULT_DB_PATH = DATA_DIR / "trafficjam.db"
DEFAULT_IMAGE_URL_TEMPLATE = "http://cic.tenerife.es/e-Traffic3/data/{identifier}.jpg"


def _get_bool(name, default):
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_db_path():
    return Path(
        os.getenv(
            "SQLITE_DB_PATH",
            os.getenv("TRAFFICJAM_DB_PATH", str(DEFAULT_DB_PATH)),
        )
    )


def get_camera_config_path():
    return Path(os.getenv("TRAFFICJAM_CAMERA_CONFIG", str(CONFIG_DIR / "cameras.yaml")))


def get_image_url_template():
    return os.getenv("IMAGE_URL_TEMPLATE", DEFAULT_IMAGE_URL_TEMPLATE)


def get_request_timeout_seconds():
    return int(os.getenv("REQUEST_TIMEOUT_SECONDS", "20"))


def get_vlm_timeout_seconds():
    return int(os.getenv("VLM_TIMEOUT_SECONDS", "120"))


def get_vlm_max_retries():
    return int(os.getenv("VLM_MAX_RETRIES", "3"))


def get_vlm_max_tokens():
    return int(os.getenv("VLM_MAX_TOKENS", "512"))


def get_vlm_model():
    return os.getenv("VLM_MODEL", "llama3.2-vision")


def get_field_prober_enabled():
    return _get_bool("FIELD_PROBER_ENABLED", False)


def get_vector_store_url():
    return os.getenv("VECTOR_STORE_URL") or None


def get_worker_warmup_seconds():
    return float(os.getenv("WORKER_WARMUP_SECONDS", "30"))


def get_bootstrap_pacing_seconds():
    return float(os.getenv("BOOTSTRAP_PACING_SECONDS", "35"))


def get_source_pacing_seconds():
    return float(os.getenv("SOURCE_PACING_SECONDS", "5"))


def get_cycle_interval_seconds():
    return float(os.getenv("CYCLE_INTERVAL_SECONDS", "60"))


def get_worker_stop_timeout_seconds():
    return float(os.getenv("WORKER_STOP_TIMEOUT_SECONDS", "30"))


def get_worker_autostart():
    return _get_bool("WORKER_AUTOSTART", True)


def get_log_level():
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_vlm_api_key():
    env_path = ROOT / ".env"
    values = dotenv_values(env_path)
    if values.get("OPENAI_API_KEY"):
        return values["OPENAI_API_KEY"]
    if values.get("VLM_API_KEY"):
        return values["VLM_API_KEY"]
    return os.getenv("OPENAI_API_KEY") or os.getenv("VLM_API_KEY")


def get_vlm_base_url():
    env_path = ROOT / ".env"
    values = dotenv_values(env_path)
    if values.get("OPENAI_BASE_URL"):
        return values["OPENAI_BASE_URL"]
    if values.get("VLM_BASE_URL"):
        return values["VLM_BASE_URL"]
    return os.getenv("OPENAI_BASE_URL", os.getenv("VLM_BASE_URL", "http://localhost:11434/v1"))
