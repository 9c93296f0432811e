"""
Archive I/O

Reads JARs and class directories into ordered entry mappings, and writes the
assembled plugin JAR reproducibly and atomically.
"""

import json
import logging
import os
import tempfile
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Dict, Union

from .errors import ArchiveError
from .models import OutputArtifact

logger = logging.getLogger(__name__)

# Earliest timestamp a ZIP entry can hold; keeps rebuilt JARs byte-identical
FIXED_DATE_TIME = (1980, 2, 1, 0, 0, 0)
FILE_MODE = 0o644


def read_archive(path: Path) -> Dict[str, bytes]:
    """
    Read all file entries of a JAR/ZIP in archive order

    Raises:
        ArchiveError: If the file is missing or not a valid archive
    """
    entries: Dict[str, bytes] = {}
    try:
        with zipfile.ZipFile(path) as zf:
            for info in zf.infolist():
                if info.is_dir() or info.filename in entries:
                    continue
                entries[info.filename] = zf.read(info)
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(str(path), f"cannot read archive: {e}")
    return entries


def read_directory(path: Path) -> Dict[str, bytes]:
    """Read a compiled-classes directory, sorted by relative path"""
    if not path.is_dir():
        raise ArchiveError(str(path), "not a directory")

    entries: Dict[str, bytes] = {}
    for file_path in sorted(p for p in path.rglob("*") if p.is_file()):
        entries[file_path.relative_to(path).as_posix()] = file_path.read_bytes()
    return entries


def read_entries(path: Path) -> Dict[str, bytes]:
    """Read either a directory or an archive"""
    path = Path(path)
    if path.is_dir():
        return read_directory(path)
    return read_archive(path)


def archive_bytes(entries: Dict[str, bytes]) -> bytes:
    """Serialize entries to ZIP bytes with fixed timestamps and permissions"""
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            info = zipfile.ZipInfo(name, date_time=FIXED_DATE_TIME)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.create_system = 3
            info.external_attr = FILE_MODE << 16
            zf.writestr(info, data)
    return buffer.getvalue()


def atomic_write(path: Path, data: Union[bytes, str]) -> Path:
    """
    Write a file so readers see either nothing or the complete content

    The data goes to a temporary file in the destination directory which is
    renamed over the target once flushed to disk.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, str):
        data = data.encode("utf-8")

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path


def metadata_path(jar_path: Path) -> Path:
    return jar_path.with_name(jar_path.name + ".json")


def write_archive(output: OutputArtifact, path: Path) -> Path:
    """
    Write the output JAR and its metadata record

    Args:
        output: Assembled artifact
        path: Destination .jar path

    Returns:
        Path to the written JAR
    """
    path = Path(path)
    data = archive_bytes(output.entries)
    atomic_write(path, data)
    atomic_write(metadata_path(path), json.dumps(output.metadata.to_dict(), indent=2) + "\n")

    logger.info(f"✓ Wrote {path} ({len(output.entries)} entries, {len(data):,} bytes)")
    return path
