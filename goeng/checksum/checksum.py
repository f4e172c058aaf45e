# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import hashlib
import logging
from pathlib import Path

log = logging.getLogger(__name__)

CHECKSUM_SUFFIX = ".sha256"


def sha256_file(path: Path) -> str:
	digest = hashlib.sha256()
	with path.open("rb") as handle:
		for chunk in iter(lambda: handle.read(1024 * 1024), b""):
			digest.update(chunk)
	return digest.hexdigest()


def write_sha256_checksum_file(path: Path) -> Path:
	"""
	Write `<path>.sha256` next to `path` and return the sidecar path.

	The line uses the base name of the file (not the full or relative path), so
	`sha256sum -c` works once the file and its sidecar are downloaded into the
	same directory.
	"""
	content = f"{sha256_file(path)}  {path.name}\n"
	out_path = Path(str(path) + CHECKSUM_SUFFIX)
	out_path.write_bytes(content.encode("utf-8"))
	log.info("Wrote checksum file %s with content: %s", out_path, content.rstrip("\n"))
	return out_path
