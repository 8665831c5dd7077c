from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from harvester.core.logging import get_logger

logger = get_logger()

_SLUG_INVALID_RE = re.compile(r"[^a-z0-9]+")


def slugify_url(url: str) -> str:
    """
    Directory-safe slug for a url:
    - scheme and leading www. dropped
    - lowercase, non-alphanumerics collapsed to "-"
    """
    s = (url or "").strip().lower()
    for prefix in ("https://", "http://"):
        if s.startswith(prefix):
            s = s[len(prefix):]
            break
    if s.startswith("www."):
        s = s[4:]
    s = _SLUG_INVALID_RE.sub("-", s).strip("-")
    return s[:120] or "untitled"


class ArtifactRun:
    """One directory of side-channel output for a single ingestion."""

    def __init__(self, directory: Optional[Path]) -> None:
        self.directory = directory

    @property
    def enabled(self) -> bool:
        return self.directory is not None

    def write_text(self, file_name: str, content: str) -> Optional[Path]:
        if self.directory is None:
            return None
        path = self.directory / file_name
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            logger.warning("artifact_write_failed", path=str(path), error=str(exc))
            return None
        return path

    def write_bytes(self, file_name: str, content: bytes) -> Optional[Path]:
        if self.directory is None:
            return None
        path = self.directory / file_name
        try:
            path.write_bytes(content)
        except OSError as exc:
            logger.warning("artifact_write_failed", path=str(path), error=str(exc))
            return None
        return path

    def write_json(self, file_name: str, payload: Any) -> Optional[Path]:
        return self.write_text(
            file_name,
            json.dumps(payload, indent=2, ensure_ascii=False, default=str),
        )


class ArtifactWriter:
    def __init__(self, base_dir: Path | str, *, enabled: bool = True) -> None:
        self.base_dir = Path(base_dir)
        self.enabled = enabled

    def open_run(self, url: str, *, now: Optional[datetime] = None) -> ArtifactRun:
        if not self.enabled:
            return ArtifactRun(None)
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d_%H%M%S")
        directory = self.base_dir / f"{stamp}_{slugify_url(url)}"
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("artifact_dir_create_failed", path=str(directory), error=str(exc))
            return ArtifactRun(None)
        return ArtifactRun(directory)
