"""Archive extraction helpers for downloaded content."""

from __future__ import annotations

import os
import shutil
import subprocess
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, List

from .errors import ArchiveError

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tar.xz", ".txz")
RAR_SUFFIXES = (".rar",)
SQUASHFS_SUFFIXES = (".squashfs", ".sqfs")


def _ensure_within(dest_root: Path, name: str) -> Path:
    target = (dest_root / name).resolve()
    if target != dest_root and dest_root not in target.parents:
        raise ArchiveError(f"Unsafe archive member path detected: {name!r}")
    return target


def _check_tar_link(dest_root: Path, member: tarfile.TarInfo) -> None:
    if member.issym():
        # symlink targets are relative to the directory holding the link
        base = (dest_root / member.name).parent
    elif member.islnk():
        base = dest_root
    else:
        return
    target = (base / member.linkname).resolve()
    if target != dest_root and dest_root not in target.parents:
        raise ArchiveError(
            f"Unsafe archive link detected: {member.name!r} -> {member.linkname!r}"
        )


def safe_extract_tar(tar: tarfile.TarFile, destination: Path) -> None:
    """Safely extract a tar archive, preventing path traversal and escaping links."""
    dest_root = destination.resolve()
    members = tar.getmembers()
    for member in members:
        _ensure_within(dest_root, member.name)
        _check_tar_link(dest_root, member)
    if hasattr(tarfile, "data_filter"):
        tar.extractall(dest_root, members=members, filter="data")
    else:
        tar.extractall(dest_root, members=members)


def safe_extract_zip(archive: zipfile.ZipFile, destination: Path) -> None:
    """Safely extract a zip archive, keeping unix permissions when recorded."""
    dest_root = destination.resolve()
    for member in archive.infolist():
        member_target = _ensure_within(dest_root, member.filename)
        if member.is_dir():
            member_target.mkdir(parents=True, exist_ok=True)
            continue
        member_target.parent.mkdir(parents=True, exist_ok=True)
        with archive.open(member, "r") as source, member_target.open("wb") as dest:
            while True:
                chunk = source.read(1024 * 1024)
                if not chunk:
                    break
                dest.write(chunk)
        perm = member.external_attr >> 16
        if perm:
            try:
                os.chmod(member_target, perm & 0o777)
            except OSError:
                pass


def _check_extracted_tree(root: Path) -> None:
    """Reject extracted symlinks that point outside ``root``."""
    for current, dirs, files in os.walk(root):
        for name in dirs + files:
            path = Path(current) / name
            if not path.is_symlink():
                continue
            target = path.resolve()
            if target != root and root not in target.parents:
                raise ArchiveError(f"Unsafe link in extracted archive: {path.relative_to(root)}")


def _rar_command(archive_path: Path, staging: Path) -> List[str]:
    return ["unrar", "x", str(archive_path), f"{staging}{os.sep}"]


def _squashfs_command(archive_path: Path, staging: Path) -> List[str]:
    return ["unsquashfs", "-f", "-d", str(staging), str(archive_path)]


def extract_with_tool(
    archive_path: Path,
    destination: Path,
    build_command: Callable[[Path, Path], List[str]],
) -> None:
    """Extract with an external tool into a staging directory, then copy into ``destination``."""
    dest_root = destination.resolve()
    with tempfile.TemporaryDirectory(prefix=".extract-", dir=dest_root.parent) as tmp:
        staging = Path(tmp).resolve()
        command = build_command(archive_path, staging)
        if shutil.which(command[0]) is None:
            raise ArchiveError(f"{command[0]} is required to extract {archive_path.name}")
        try:
            result = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise ArchiveError(f"Failed to run {command[0]}: {exc}") from exc
        if result.returncode != 0:
            raise ArchiveError(
                f"{command[0]} failed for {archive_path.name} "
                f"(exit {result.returncode}): {(result.stderr or '').strip()}"
            )
        _check_extracted_tree(staging)
        try:
            shutil.copytree(staging, dest_root, symlinks=True, dirs_exist_ok=True)
        except OSError as exc:
            raise ArchiveError(f"Unable to copy extracted {archive_path.name}: {exc}") from exc


def extract_archive(archive_path: Path, destination: Path) -> None:
    """Extract a zip, tar, rar or squashfs archive into ``destination`` (created if missing)."""
    name = archive_path.name.lower()
    destination.mkdir(parents=True, exist_ok=True)
    try:
        if name.endswith(".zip"):
            with zipfile.ZipFile(archive_path, "r") as archive:
                safe_extract_zip(archive, destination)
        elif name.endswith(TAR_SUFFIXES):
            with tarfile.open(archive_path, "r:*") as tar:
                safe_extract_tar(tar, destination)
        elif name.endswith(RAR_SUFFIXES):
            extract_with_tool(archive_path, destination, _rar_command)
        elif name.endswith(SQUASHFS_SUFFIXES):
            extract_with_tool(archive_path, destination, _squashfs_command)
        else:
            raise ArchiveError(f"Unsupported archive format: {archive_path.name}")
    except (zipfile.BadZipFile, tarfile.TarError) as exc:
        raise ArchiveError(f"Corrupt archive {archive_path.name}: {exc}") from exc
