"""Persist export payloads to the local download directory."""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from qualtrics_mcp.app.core.config import settings
from qualtrics_mcp.app.core.logging import get_log_context, get_logger
from qualtrics_mcp.app.services.export_poller import requires_persistence

logger = get_logger(__name__)


@dataclass
class SavedExport:
    file_path: Path
    size_bytes: int
    size_mb: str
    was_auto_saved: bool


def _extension(fmt: str) -> str:
    return "json" if fmt == "json" else "csv"


def save_export_to_file(
    data: str,
    survey_id: str,
    fmt: str,
    save_to: Optional[str] = None,
    suffix: Optional[str] = None,
    download_dir: Optional[Path] = None,
) -> SavedExport:
    """Write an export to disk.

    Args:
        data: Export payload text
        survey_id: Survey the export belongs to, used in generated names
        fmt: Export format, picks the file extension
        save_to: Requested file name or absolute path. Relative names land in
            the download directory and get an extension if they have none.
        suffix: Extra tag for generated names (e.g. "filtered")
        download_dir: Overrides the configured download directory

    Returns:
        SavedExport describing where the file went. ``was_auto_saved`` is
        True when the payload was saved only because of its size.
    """
    base_dir = Path(download_dir or settings.export_download_dir).expanduser()
    size_bytes = len(data.encode("utf-8"))

    if save_to:
        name = save_to if "." in Path(save_to).name else f"{save_to}.{_extension(fmt)}"
        path = Path(name).expanduser()
        if not path.is_absolute():
            path = base_dir / path
    else:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        suffix_str = f"_{suffix}" if suffix else ""
        path = base_dir / f"survey_{survey_id}{suffix_str}_{timestamp}.{_extension(fmt)}"

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data, encoding="utf-8")

    logger.info(
        f"Export saved to {path} ({size_bytes} bytes)",
        extra=get_log_context(survey_id=survey_id),
    )
    return SavedExport(
        file_path=path,
        size_bytes=size_bytes,
        size_mb=f"{size_bytes / (1024 * 1024):.2f}",
        was_auto_saved=requires_persistence(size_bytes) and not save_to,
    )
