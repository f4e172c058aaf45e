# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import io
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

FIXED_ZIP_TIME = (2024, 11, 6, 12, 30, 0)
FIXED_MTIME = 1730896200


@dataclass(frozen=True)
class TarEntry:
	name: str
	data: bytes = b""
	type: bytes = tarfile.REGTYPE
	mode: int = 0o644
	linkname: str = ""
	pax_headers: dict[str, str] = field(default_factory=dict)


def write_zip(path: Path, entries: dict[str, bytes], *, comment: bytes = b"") -> Path:
	"""Write a zip with deterministic metadata; names ending in '/' become directories."""
	path.parent.mkdir(parents=True, exist_ok=True)
	with zipfile.ZipFile(path, "w") as zf:
		for name, data in entries.items():
			info = zipfile.ZipInfo(name, date_time=FIXED_ZIP_TIME)
			if name.endswith("/"):
				info.external_attr = (0o40755 << 16) | 0x10
			else:
				info.compress_type = zipfile.ZIP_DEFLATED
				info.external_attr = 0o100755 << 16 if name.endswith(".exe") else 0o100644 << 16
				info.comment = comment
			zf.writestr(info, data)
	return path


def write_tar_gz(path: Path, entries: list[TarEntry]) -> Path:
	path.parent.mkdir(parents=True, exist_ok=True)
	with tarfile.open(path, "w:gz", format=tarfile.PAX_FORMAT) as tf:
		for e in entries:
			info = tarfile.TarInfo(e.name)
			info.type = e.type
			info.mode = e.mode
			info.mtime = FIXED_MTIME
			info.uid = 1000
			info.gid = 1000
			info.uname = "builder"
			info.gname = "builder"
			info.linkname = e.linkname
			info.pax_headers = dict(e.pax_headers)
			if e.type == tarfile.REGTYPE:
				info.size = len(e.data)
				tf.addfile(info, io.BytesIO(e.data))
			else:
				tf.addfile(info)
	return path


def set_zip_encrypted_flag(path: Path) -> None:
	"""Set the "encrypted" general-purpose bit on every entry without encrypting anything."""
	data = bytearray(path.read_bytes())
	# Flag word offset: 6 in local headers, 8 in central directory headers.
	for signature, offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
		pos = data.find(signature)
		while pos != -1:
			data[pos + offset] |= 0x1
			pos = data.find(signature, pos + 4)
	path.write_bytes(bytes(data))


def read_zip(path: Path) -> dict[str, bytes]:
	with zipfile.ZipFile(path) as zf:
		return {info.filename: zf.read(info) for info in zf.infolist()}


def zip_metadata(path: Path) -> list[tuple[object, ...]]:
	with zipfile.ZipFile(path) as zf:
		return [
			(i.filename, i.compress_type, i.comment, i.date_time, i.extra, i.external_attr)
			for i in zf.infolist()
		]


def read_tar_gz(path: Path) -> dict[str, bytes]:
	out: dict[str, bytes] = {}
	with tarfile.open(path, "r:gz") as tf:
		for member in tf.getmembers():
			f = tf.extractfile(member) if member.isreg() else None
			out[member.name] = f.read() if f is not None else b""
	return out


def tar_metadata(path: Path) -> list[tuple[object, ...]]:
	with tarfile.open(path, "r:gz") as tf:
		return [
			(
				m.name,
				m.type,
				m.linkname,
				m.mode,
				m.uid,
				m.gid,
				m.uname,
				m.gname,
				int(m.mtime),
				m.pax_headers.get("atime"),
				m.pax_headers.get("ctime"),
			)
			for m in tf.getmembers()
		]
