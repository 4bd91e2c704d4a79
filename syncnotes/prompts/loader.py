"""
Versioned prompt templates, one YAML file per component: syncnotes/prompts/{version}/{component}.yaml.
Each file holds a "system" and/or "user" template with <<NAME>> placeholders.
PROMPT_VERSION (default v1) selects the version directory.
"""
import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

import yaml

_PROMPTS_DIR = Path(__file__).resolve().parent
_PLACEHOLDER = re.compile(r"<<([A-Z_]+)>>")


@lru_cache(maxsize=32)
def _load(component: str, version: str) -> Dict[str, str]:
    path = _PROMPTS_DIR / version / f"{component}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found: {path}")
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return {role: str(data[role]).strip() for role in ("system", "user") if data.get(role) is not None}


def load_prompts(component: str, version: Optional[str] = None) -> Dict[str, str]:
    """Templates for a component keyed by role. Files are read once per (component, version).
    Why available: Keeps transcription, mind-map and chat instructions editable without code changes."""
    if version is None:
        from syncnotes.core.config import settings
        version = settings.prompt_version
    return dict(_load(component, version))


def render_prompt(component: str, role: str, version: Optional[str] = None, **values: str) -> str:
    """Fill one template: render_prompt("mind_map", "user", SUMMARY=summary).
    Placeholders without a value are left as-is; a missing role raises ValueError."""
    prompts = load_prompts(component, version=version)
    if role not in prompts:
        raise ValueError(f"Component {component} has no '{role}' prompt")
    return _PLACEHOLDER.sub(lambda m: str(values.get(m.group(1), m.group(0))), prompts[role])


def get_system_prompt(component: str, version: Optional[str] = None, **values: str) -> str:
    return render_prompt(component, "system", version=version, **values)


def get_user_prompt(component: str, version: Optional[str] = None, **values: str) -> str:
    return render_prompt(component, "user", version=version, **values)
