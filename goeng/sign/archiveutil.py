# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Helpers for reading and writing the two release container formats.

Pinned rules:
- every entry name is checked with `is_local` before the caller sees it;
- the deadline is checked before each entry, not only between archives;
- writers are always closed on error; partial output files stay on disk and
  cleaning them up is the caller's job.
"""

from __future__ import annotations

import gzip
import posixpath
import shutil
import tarfile
import zipfile
from contextlib import contextmanager
from fnmatch import fnmatchcase
from pathlib import Path
from typing import IO, BinaryIO, Iterator

from goeng.sign.deadline import Deadline
from goeng.sign.errors import SignError

# Errors raised by the standard library for broken files or containers.
ARCHIVE_IO_ERRORS = (OSError, EOFError, zipfile.BadZipFile, tarfile.TarError, NotImplementedError)

_ZIP_FLAG_ENCRYPTED = 0x1


def is_local(name: str) -> bool:
	"""
	Report whether an entry name stays inside the directory it is extracted to.

	The name is cleaned lexically first, so `go/bin/../doc` is local while
	`go/../../evil` is not. Empty names and absolute paths (POSIX,
	drive-qualified or backslash rooted) are never local.
	"""
	if not name:
		return False
	norm = name.replace("\\", "/")
	if norm.startswith("/"):
		return False
	if len(norm) >= 2 and norm[1] == ":":
		return False
	cleaned = posixpath.normpath(norm)
	return cleaned != ".." and not cleaned.startswith("../")


def match_path(pattern: str, name: str) -> bool:
	"""Glob match where each `*` stays within one '/'-separated segment."""
	pat_parts = pattern.split("/")
	name_parts = name.split("/")
	if len(pat_parts) != len(name_parts):
		return False
	return all(fnmatchcase(n, p) for n, p in zip(name_parts, pat_parts))


def iter_zip_entries(zf: zipfile.ZipFile, deadline: Deadline) -> Iterator[zipfile.ZipInfo]:
	for info in zf.infolist():
		deadline.check()
		if not is_local(info.filename):
			raise SignError(
				reason_code="PATH_UNSAFE",
				message=f"zip contains non-local path: {info.filename}",
				path=str(zf.filename) if zf.filename else None,
			)
		# zipfile raises a bare RuntimeError when asked to read these.
		if info.flag_bits & _ZIP_FLAG_ENCRYPTED:
			raise SignError(
				reason_code="ARCHIVE_IO",
				message=f"zip entry is encrypted: {info.filename}",
				path=str(zf.filename) if zf.filename else None,
			)
		yield info


def iter_tar_entries(tf: tarfile.TarFile, deadline: Deadline) -> Iterator[tuple[tarfile.TarInfo, IO[bytes] | None]]:
	"""
	Yield each header with a reader scoped to exactly that entry's bytes.

	The reader is `None` for anything but a regular file, and is only valid
	until the next entry is requested (the tar is read as a stream).
	"""
	for member in tf:
		deadline.check()
		if not is_local(member.name):
			raise SignError(
				reason_code="PATH_UNSAFE",
				message=f"tar contains non-local path: {member.name}",
				path=str(tf.name) if tf.name else None,
			)
		reader = tf.extractfile(member) if member.isreg() else None
		yield member, reader


@contextmanager
def wrap_archive_errors(path: Path, action: str) -> Iterator[None]:
	"""Turn I/O and container-format errors into `SignError(ARCHIVE_IO)` naming `path`."""
	try:
		yield
	except SignError:
		raise
	except ARCHIVE_IO_ERRORS as err:
		raise SignError(reason_code="ARCHIVE_IO", message=f"{action}: {err}", path=str(path)) from err


@contextmanager
def tar_gz_open(path: Path) -> Iterator[tarfile.TarFile]:
	with tarfile.open(path, mode="r|gz") as tf:
		yield tf


@contextmanager
def file_create(path: Path) -> Iterator[BinaryIO]:
	path.parent.mkdir(parents=True, exist_ok=True)
	with path.open("wb") as f:
		yield f


@contextmanager
def zip_create(path: Path) -> Iterator[zipfile.ZipFile]:
	with file_create(path) as f, zipfile.ZipFile(f, mode="w") as zw:
		yield zw


@contextmanager
def tar_gz_create(path: Path) -> Iterator[tarfile.TarFile]:
	# No embedded file name and a zero mtime keep the gzip frame reproducible.
	with (
		file_create(path) as f,
		gzip.GzipFile(filename="", fileobj=f, mode="wb", compresslevel=9, mtime=0) as gz,
		tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as tw,
	):
		yield tw


def copy_file(dst: Path, src: Path) -> None:
	dst.parent.mkdir(parents=True, exist_ok=True)
	shutil.copyfile(src, dst)
