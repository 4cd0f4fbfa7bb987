# core/settings.py
from __future__ import annotations
import json
import os
from pathlib import Path
from typing import Any, Dict

# --- Chemins de base ---
ROOT_DIR = Path(__file__).resolve().parents[1]  # smart_fret/
TEMPLATES_DIR = ROOT_DIR / "templates" / "pdf"


def data_dir() -> Path:
    env = os.environ.get("SMARTFRET_DATA_DIR")
    return Path(env) if env else ROOT_DIR / "data"


def exports_dir() -> Path:
    env = os.environ.get("SMARTFRET_EXPORTS_DIR")
    return Path(env) if env else ROOT_DIR / "exports"


def settings_path() -> Path:
    return data_dir() / "settings.json"


def load_settings() -> Dict[str, Any]:
    """Lit data/settings.json ; fichier absent ou corrompu -> {}."""
    p = settings_path()
    if not p.exists():
        return {}
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def get_setting(path: str, default: Any = None) -> Any:
    """Lecture pointée : get_setting("report.primary_color", "#3b82f6")."""
    node: Any = load_settings()
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return default if node in (None, "") else node


def primary_color() -> str:
    return os.environ.get("SMARTFRET_PRIMARY_COLOR") or get_setting("report.primary_color", "#3b82f6")


def logo_path() -> str | None:
    return os.environ.get("SMARTFRET_LOGO") or get_setting("report.logo_path")


def current_username() -> str | None:
    return os.environ.get("SMARTFRET_USER") or get_setting("user.username")
