"""Filesystem-backed CheckpointStore."""
from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .checkpoint_store import CheckpointStore


def _checkpoint_path(root: Path, job_key: str) -> Path:
    return root / f"job_key={job_key}" / "context.json"


class LocalFilesystemCheckpointStore(CheckpointStore):
    """One ``context.json`` per job key, replaced atomically on save."""

    def __init__(self, root: Path | str = Path("data/checkpoints")) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    def load(self, job_key: str) -> Optional[dict]:
        path = _checkpoint_path(self._root, job_key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def save(self, job_key: str, context: Mapping[str, object]) -> None:
        path = _checkpoint_path(self._root, job_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(dict(context), handle, sort_keys=True)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, job_key: str) -> None:
        path = _checkpoint_path(self._root, job_key)
        path.unlink(missing_ok=True)
        if path.parent.exists() and not any(path.parent.iterdir()):
            path.parent.rmdir()

    def list_keys(self) -> Sequence[str]:
        keys = []
        for child in self._root.iterdir():
            if (
                child.is_dir()
                and child.name.startswith("job_key=")
                and (child / "context.json").exists()
            ):
                keys.append(child.name.replace("job_key=", "", 1))
        keys.sort()
        return keys


__all__ = ["LocalFilesystemCheckpointStore"]
