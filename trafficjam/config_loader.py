from pathlib import Path

import yaml

from trafficjam.models import PLACEHOLDER_TITLE
from trafficjam.settings import get_camera_config_path


def load_cameras(config_path=None):
    path = Path(config_path) if config_path else get_camera_config_path()
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or []
    cameras = []
    for entry in payload:
        if not entry:
            continue
        url = str(entry.get("url", "")).strip()
        if not url:
            continue
        cameras.append({
            "url": url,
            "title": str(entry.get("title") or PLACEHOLDER_TITLE).strip(),
            "enabled": bool(entry.get("enabled", True)),
        })
    return cameras
