"""Per-job scratch copies of source audio.

The original audio belongs to the capture system and is never modified or
removed. Each attempt works on its own copy, which is removed on every exit
path of `scratch_copy`.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from capture_bridge.transcription.errors import (
    AudioSourceNotFoundError,
    AudioSourceUnreadableError,
)
from capture_bridge.utils.logger import get_logger

logger = get_logger(__name__)


def verify_audio_source(audio_path: str | os.PathLike[str]) -> Path:
    """Returns the source path if it is an existing readable file."""
    path = Path(audio_path)
    if not path.exists():
        raise AudioSourceNotFoundError(f"Audio source not found: {path}")
    if not path.is_file():
        raise AudioSourceUnreadableError(f"Audio source is not a regular file: {path}")
    if not os.access(path, os.R_OK):
        raise AudioSourceUnreadableError(f"Audio source is not readable: {path}")
    return path


class TempArtifactManager:
    """Creates and removes scratch copies under one root folder."""

    def __init__(self, tmp_folder: Path) -> None:
        self.tmp_folder = tmp_folder

    @contextmanager
    def scratch_copy(self, source: Path, *, capture_id: str) -> Iterator[Path]:
        """Yields a private copy of `source`, removed when the context exits."""
        self.tmp_folder.mkdir(parents=True, exist_ok=True)
        fd, raw_path = tempfile.mkstemp(
            prefix=f"{_safe_prefix(capture_id)}-",
            suffix=source.suffix,
            dir=self.tmp_folder,
        )
        os.close(fd)
        temp_path = Path(raw_path)
        try:
            try:
                shutil.copyfile(source, temp_path)
            except FileNotFoundError as err:
                raise AudioSourceNotFoundError(
                    f"Audio source disappeared while copying: {source}"
                ) from err
            except PermissionError as err:
                raise AudioSourceUnreadableError(
                    f"Audio source could not be read while copying: {source}"
                ) from err
            yield temp_path
        finally:
            self.remove(temp_path)

    @staticmethod
    def remove(temp_path: Path) -> bool:
        """Deletes one scratch file; failures are logged, never raised."""
        try:
            temp_path.unlink(missing_ok=True)
        except OSError as err:
            logger.warning("Failed to remove temp artifact %s: %s", temp_path, err)
            return False
        return True


def _safe_prefix(capture_id: str) -> str:
    cleaned = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in capture_id)
    return cleaned[:64] or "capture"
