"""Atomic writing of bundle files.

Bundles are only written after emission has finished, and every write
goes through a temporary file in the destination directory followed by a
rename, so a reader never sees a half-written bundle.

Example:
    Single bundle::

        writer = BundleWriter()
        result = writer.write_bundle(Path("dist/types.d.ts"), text)

    Batch mode, one file per entry::

        writer = BundleWriter(output_dir=Path("dist/types"))
        results = writer.write_bundles([("User.d.ts", user_text), ("Product.d.ts", product_text)])
"""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from tsbundler.utils.logger import get_logger
from tsbundler.utils.path_utils import ensure_directory, is_safe_path, normalize_path


@dataclass
class WriteResult:
    """Result of a single bundle write.

    Attributes:
        success: Whether the write completed
        output_path: Path the bundle was written to
        error: Human-readable error message if the write failed
        size: Number of characters written
    """

    success: bool
    output_path: Path
    error: str | None = None
    size: int = 0


@dataclass
class WriteSummary:
    """Aggregated outcome of the writes made by one ``BundleWriter``."""

    results: list[WriteResult] = field(default_factory=list)

    @property
    def written_files(self) -> list[Path]:
        return [r.output_path for r in self.results if r.success]

    @property
    def failed_writes(self) -> int:
        return sum(1 for r in self.results if not r.success)


class BundleWriter:
    """Writes bundle text to disk atomically.

    Attributes:
        output_dir: Directory batch bundles are written into, if any
    """

    def __init__(self, output_dir: Path | None = None) -> None:
        self._logger = get_logger("tsbundler.core.output_writer")
        self.output_dir = normalize_path(output_dir) if output_dir is not None else None
        self.summary = WriteSummary()

    def _write_atomic(self, output_path: Path, content: str) -> None:
        """Write *content* to *output_path* through a temp file and rename.

        Raises:
            OSError: On file-system errors (propagated after cleanup).
        """
        ensure_directory(output_path.parent)
        temp_path: str | None = None

        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                newline="",
                delete=False,
                dir=str(output_path.parent),
                prefix=f".{output_path.name}.",
                suffix=".tmp",
            ) as fd:
                temp_path = fd.name
                fd.write(content)
                fd.flush()
                os.fsync(fd.fileno())

            shutil.move(temp_path, str(output_path))
            self._logger.debug(f"Atomic write: renamed {temp_path} -> {output_path}")

        except OSError as exc:
            self._logger.error(f"Atomic write failed for {output_path}: {exc}")
            if temp_path is not None and os.path.exists(temp_path):
                try:
                    os.unlink(temp_path)
                except OSError:
                    self._logger.error(f"Failed to clean up temp file: {temp_path}")
            raise

    def write_bundle(self, output_path: Path, content: str) -> WriteResult:
        """Write one bundle; failures are reported in the result, not raised."""
        output_path = normalize_path(output_path)
        try:
            self._write_atomic(output_path, content)
        except OSError as exc:
            result = WriteResult(False, output_path, error=f"Failed to write {output_path}: {exc}")
        else:
            self._logger.info(f"Bundle written to {output_path} ({len(content)} chars)")
            result = WriteResult(True, output_path, size=len(content))
        self.summary.results.append(result)
        return result

    def write_bundles(self, bundles: list[tuple[str, str]]) -> list[WriteResult]:
        """Write ``(file_name, content)`` pairs into ``output_dir``.

        File names that would escape the output directory are rejected.

        Raises:
            ValueError: If the writer has no output directory
        """
        if self.output_dir is None:
            raise ValueError("write_bundles requires an output directory")

        self._logger.info(f"Batch write started: {len(bundles)} file(s)")
        results: list[WriteResult] = []
        for file_name, content in bundles:
            target = self.output_dir / file_name
            if not is_safe_path(target, self.output_dir):
                self._logger.error(f"Refusing to write outside {self.output_dir}: {file_name}")
                result = WriteResult(
                    False, target, error=f"Output name '{file_name}' escapes {self.output_dir}"
                )
                self.summary.results.append(result)
                results.append(result)
                continue
            results.append(self.write_bundle(target, content))

        succeeded = sum(1 for r in results if r.success)
        self._logger.info(f"Batch write completed: {succeeded}/{len(bundles)} succeeded")
        return results
