"""
Package staging and deterministic archives.

Stages the workspace into a scratch directory and produces the tar.gz / zip
pair that becomes the package's two layers. Identical input trees produce
byte-identical archives: entries are sorted, ownership and timestamps are
fixed, and permissions are normalized.
"""
from __future__ import annotations

import gzip
import hashlib
import logging
import os
import shutil
import tarfile
import unicodedata
import zipfile
from pathlib import Path, PurePosixPath
from typing import Iterator, Tuple

from .models import ArchiveSet, FileMetadata

logger = logging.getLogger(__name__)

EXCLUDED_NAMES = (".git", ".github")
TAR_NAME = "action.tar.gz"
ZIP_NAME = "action.zip"

# Earliest timestamp a zip entry can carry
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def stage_files(src_dir: str | Path, dest_dir: str | Path) -> Path:
    """
    Copy the package files into a staging directory.

    Version control metadata (``.git``) and workflow configuration
    (``.github``) are left out.

    Returns:
        Staging directory path
    """
    src_path = Path(src_dir).resolve()
    if not src_path.is_dir():
        raise ValueError(f"Source directory does not exist: {src_dir}")

    dest_path = Path(dest_dir)
    shutil.copytree(src_path, dest_path, ignore=shutil.ignore_patterns(*EXCLUDED_NAMES),
                    dirs_exist_ok=True)
    logger.debug(f"Staged {src_path} into {dest_path}")
    return dest_path


def create_archives(staged_dir: str | Path, out_dir: str | Path) -> ArchiveSet:
    """
    Create the tar.gz and zip archives of a staged directory.

    Args:
        staged_dir: Directory produced by ``stage_files``
        out_dir: Directory to write the archives into

    Returns:
        Metadata (path, digest, size) for both archives

    Raises:
        ValueError: If staged_dir doesn't exist or contains unsafe paths
    """
    src_path = Path(staged_dir).resolve()
    if not src_path.is_dir():
        raise ValueError(f"Staged directory does not exist: {staged_dir}")

    out_path = Path(out_dir)
    out_path.mkdir(parents=True, exist_ok=True)

    tar_path = out_path / TAR_NAME
    zip_path = out_path / ZIP_NAME
    write_tar_gz(src_path, tar_path)
    write_zip(src_path, zip_path)

    archives = ArchiveSet(tar_file=file_metadata(tar_path), zip_file=file_metadata(zip_path))
    logger.info(f"Created archives {archives.tar_file.sha256} (tar.gz) and "
                f"{archives.zip_file.sha256} (zip)")
    return archives


def file_metadata(path: Path) -> FileMetadata:
    """Hash a file in chunks and describe it."""
    hasher = hashlib.sha256()
    size = 0
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            hasher.update(chunk)
            size += len(chunk)
    return FileMetadata(path=path, sha256=f"sha256:{hasher.hexdigest()}", size=size)


def write_tar_gz(src_path: Path, out_path: Path) -> None:
    """Write a gzip-compressed USTAR archive with canonical headers."""
    with open(out_path, 'wb') as f:
        # mtime=0 and an empty filename keep the gzip header stable
        with gzip.GzipFile(filename="", fileobj=f, mode='wb', mtime=0) as gz:
            with tarfile.open(fileobj=gz, mode='w', format=tarfile.USTAR_FORMAT) as tar:
                for entry_path, arcname in _iter_entries_sorted(src_path):
                    arc = arcname + ("/" if entry_path.is_dir() else "")
                    tarinfo = tar.gettarinfo(str(entry_path), arcname=arc)
                    _apply_canonical_headers(tarinfo)

                    if tarinfo.isreg():
                        with open(entry_path, 'rb') as entry_file:
                            tar.addfile(tarinfo, entry_file)
                    else:
                        tar.addfile(tarinfo)


def write_zip(src_path: Path, out_path: Path) -> None:
    """Write a deflated zip archive with fixed timestamps and modes."""
    with zipfile.ZipFile(out_path, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
        for entry_path, arcname in _iter_entries_sorted(src_path):
            if entry_path.is_dir():
                info = zipfile.ZipInfo(arcname + "/", date_time=_ZIP_EPOCH)
                info.external_attr = (0o40755 << 16) | 0x10
                zf.writestr(info, b"")
                continue

            info = zipfile.ZipInfo(arcname, date_time=_ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            mode = 0o755 if entry_path.stat().st_mode & 0o100 else 0o644
            info.external_attr = (0o100000 | mode) << 16
            zf.writestr(info, entry_path.read_bytes())


def _iter_entries_sorted(src_dir: Path) -> Iterator[Tuple[Path, str]]:
    """
    Iterate entries in deterministic order.

    Yields (filesystem_path, archive_name) pairs sorted by archive name.
    Directories sort before their contents.
    """
    entries = []

    for root, dirs, files in os.walk(src_dir):
        root_path = Path(root)
        rel_root = root_path.relative_to(src_dir)

        if rel_root != Path('.'):
            entries.append((root_path, normalize_relpath(str(rel_root))))

        for file_name in files:
            file_path = root_path / file_name
            rel_file = file_path.relative_to(src_dir)
            entries.append((file_path, normalize_relpath(str(rel_file))))

    entries.sort(key=lambda x: x[1])

    yield from entries


def normalize_relpath(path: str) -> str:
    """
    Normalize relative path for archive creation.

    Converts backslashes to forward slashes, applies NFC normalization and
    rejects paths that could escape the archive root.

    Raises:
        ValueError: If the path is empty, absolute, or contains '..' or NUL
    """
    normalized = unicodedata.normalize('NFC', path.replace('\\', '/'))
    if normalized.startswith("./"):
        normalized = normalized[2:]

    rel = PurePosixPath(normalized)
    s = str(rel)
    if not s or s == ".":
        raise ValueError(f"unsafe archive path: {path}")
    if rel.is_absolute() or ".." in rel.parts:
        raise ValueError(f"unsafe archive path: {path}")
    if "\x00" in s:
        raise ValueError(f"archive path contains NUL byte: {path}")

    return normalized


def _apply_canonical_headers(tarinfo: tarfile.TarInfo) -> None:
    """Fix ownership and timestamps; normalize permissions by file type."""
    tarinfo.uid = 0
    tarinfo.gid = 0
    tarinfo.uname = ""
    tarinfo.gname = ""
    tarinfo.mtime = 0

    if tarinfo.isdir():
        tarinfo.mode = 0o755
    elif tarinfo.isreg():
        # Preserve execute bit for regular files
        tarinfo.mode = 0o755 if tarinfo.mode & 0o100 else 0o644


__all__ = ["stage_files", "create_archives", "file_metadata", "write_tar_gz", "write_zip",
           "normalize_relpath"]
