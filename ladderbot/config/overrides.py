"""Load configuration overrides from YAML.

Optional file path via env `HL_CONFIG_FILE`, default `configs/ladder.yaml`.
Returns a flat dict mapping Settings field name -> value.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

log = logging.getLogger("ladderbot")


def load_overrides(path: str | None = None) -> Dict[str, Any]:
    if path is None:
        path = os.getenv("HL_CONFIG_FILE", "configs/ladder.yaml")
    p = Path(path)
    if not p.exists():
        return {}
    try:
        with p.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        log.warning(f"config_overrides_unreadable path={p} err={exc}")
        return {}
    if not isinstance(data, dict):
        return {}
    # Nested sections are ignored; keys map 1:1 onto Settings fields.
    return {str(k): v for k, v in data.items() if not isinstance(v, dict)}
