"""In-memory zip container writer.

Collects (path, content) entries and produces one finalized archive buffer.
Content is UTF-8 text or raw bytes. The mimetype entry, when present, is
written first and stored uncompressed, as the OCF container format requires;
everything else is deflated.

Entries are written in insertion order. Adding a path twice replaces the
earlier content but keeps its position.
"""

import io
import zipfile

from epubkit.errors import ArchiveError
from epubkit.paths import MIMETYPE_PATH

# Earliest timestamp the zip format can represent; keeps output reproducible
DEFAULT_DATE_TIME = (1980, 1, 1, 0, 0, 0)


class ArchiveWriter:
    """Accumulate archive entries and finalize them into bytes."""

    def __init__(self, date_time: tuple[int, int, int, int, int, int] = DEFAULT_DATE_TIME):
        self.date_time = date_time
        self._entries: dict[str, bytes] = {}

    @property
    def paths(self) -> list[str]:
        return list(self._entries)

    def add_text(self, path: str, text: str) -> None:
        """Add a UTF-8 text entry."""
        self.add_bytes(path, text.encode("utf-8"))

    def add_bytes(self, path: str, data: bytes) -> None:
        """Add a binary entry.

        Raises:
            ArchiveError: If the path is absolute or escapes the archive root.
        """
        if not path or path.startswith("/") or path.startswith("\\"):
            raise ArchiveError(f"Invalid archive path: {path!r}")
        if ".." in path.split("/"):
            raise ArchiveError(f"Path traversal in archive path: {path!r}")
        self._entries[path] = data

    def _zip_info(self, path: str, compress_type: int) -> zipfile.ZipInfo:
        info = zipfile.ZipInfo(path, date_time=self.date_time)
        info.compress_type = compress_type
        info.external_attr = 0o644 << 16
        return info

    def finalize(self) -> bytes:
        """Write every entry into a zip container.

        Returns:
            The archive bytes.

        Raises:
            ArchiveError: If the container cannot be written.
        """
        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w") as zf:
                mimetype = self._entries.get(MIMETYPE_PATH)
                if mimetype is not None:
                    zf.writestr(self._zip_info(MIMETYPE_PATH, zipfile.ZIP_STORED), mimetype)

                for path, data in self._entries.items():
                    if path == MIMETYPE_PATH:
                        continue
                    zf.writestr(self._zip_info(path, zipfile.ZIP_DEFLATED), data)
        except (OSError, ValueError, zipfile.LargeZipFile) as e:
            raise ArchiveError(f"Failed to write archive: {e}") from e

        return buffer.getvalue()
