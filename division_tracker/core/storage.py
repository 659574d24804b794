"""Local file storage helpers.

`OverlayStore` is the durable key/value JSON blob that holds editor drafts
between page reloads. `export_to_excel` writes DataFrames for download.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

import pandas as pd

from .config import settings

LOG = logging.getLogger(__name__)


def key_for_id(division_id: Any) -> Optional[str]:
    """Return `id:<n>` for a positive integer-like id, else None."""
    if division_id is None or isinstance(division_id, bool):
        return None
    try:
        n = int(str(division_id).strip())
    except (TypeError, ValueError):
        return None
    return f"id:{n}" if n > 0 else None


def key_for_name(name: Any) -> Optional[str]:
    """Return `name:<trimmed lowercased name>`, or None for a blank name."""
    s = str(name or "").strip().lower()
    return f"name:{s}" if s else None


class OverlayStore:
    """Draft overlays keyed by both id-key and name-key.

    The whole map is read and rewritten on each call; callers treat it as
    synchronous. A file that cannot be parsed reads as an empty store.
    """

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path or settings.OVERLAY_FILE)

    def read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError):
            LOG.debug("Unreadable overlay store at %s", self.path, exc_info=True)
            return {}
        if not isinstance(data, dict):
            LOG.debug("Overlay store at %s is not an object; ignoring", self.path)
            return {}
        return data

    def write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".overlay-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data or {}, fh)
            os.replace(tmp, self.path)
        except Exception:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def get(self, division_id: Any = None, name: Any = None) -> Optional[Dict[str, Any]]:
        """Return the overlay stored under the id-key, falling back to the name-key."""
        store = self.read_all()
        for k in (key_for_id(division_id), key_for_name(name)):
            if k and isinstance(store.get(k), dict):
                return store[k]
        return None

    def put(self, division_id: Any, name: Any, record: Dict[str, Any]) -> bool:
        """Store `record` under every usable key. Returns False when there is none."""
        keys = [k for k in (key_for_id(division_id), key_for_name(name)) if k]
        if not keys:
            return False
        store = self.read_all()
        for k in keys:
            store[k] = record
        self.write_all(store)
        return True

    def delete(self, division_id: Any = None, name: Any = None) -> None:
        store = self.read_all()
        for k in (key_for_id(division_id), key_for_name(name)):
            if k:
                store.pop(k, None)
        self.write_all(store)


def export_to_excel(df: pd.DataFrame, path: Union[str, Path]) -> str:
    """Export a DataFrame to an Excel file at `path`.

    Ensures the parent directory exists. Returns the absolute path to the
    written file as a string.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    df.to_excel(file_path, index=False)

    return str(file_path.resolve())


__all__ = ["OverlayStore", "key_for_id", "key_for_name", "export_to_excel"]
