"""Existence and freshness checks guarding every durable artifact."""

from __future__ import annotations

import json
import logging
import shutil
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("districtmaps.cache")


def is_cached(path: Path) -> bool:
    return path.is_file()


def is_fresh(path: Path, max_age: timedelta, now: Optional[datetime] = None) -> bool:
    """True when ``path`` exists and was modified less than ``max_age`` ago."""
    try:
        modified = datetime.fromtimestamp(path.stat().st_mtime)
    except FileNotFoundError:
        return False
    except OSError:
        logger.exception("Failed to read last modified time of %s", path)
        return False
    now = now or datetime.now()
    if modified > now - max_age:
        return True
    logger.info("Ignoring cached file, as it is older than %s: %s", max_age, path)
    return False


def write_json(path: Path, obj: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, separators=(",", ":")), encoding="utf-8")


def remove_dir(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)


def reset_dir(path: Path) -> None:
    remove_dir(path)
    path.mkdir(parents=True, exist_ok=True)
