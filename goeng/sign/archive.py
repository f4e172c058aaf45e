# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
One Go release archive and the signing steps applied to it.

Phases run in a fixed order shared by every archive in a batch:

1. prepare_entries_to_sign / repack_signed_entries
2. prepare_notarize / unpack_notarize (optional, currently a no-op)
3. prepare_archive_signatures
4. copy_to_destination

Windows zips get their `.exe` entries signed individually. macOS tarballs get
their binaries bundled into a zip for hardening, because the signing service
only offers that feature for zip payloads. Linux tarballs only get a detached
signature.
"""

from __future__ import annotations

import enum
import logging
import posixpath
import shutil
import tarfile
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from goeng.sign.archiveutil import (
	copy_file,
	file_create,
	iter_tar_entries,
	iter_zip_entries,
	match_path,
	tar_gz_create,
	tar_gz_open,
	wrap_archive_errors,
	zip_create,
)
from goeng.sign.deadline import Deadline
from goeng.sign.errors import SignError
from goeng.sign.request import PROFILE_DETACHED_SIG, PROFILE_MAC_HARDEN, PROFILE_WINDOWS_EXE, SigningRequest

log = logging.getLogger(__name__)

# pax records carrying the access and change timestamps.
_PAX_TIME_KEYS = ("atime", "ctime")


class ArchiveKind(enum.Enum):
	# Windows.
	ZIP = "zip"
	# macOS and Linux.
	TAR_GZ = "tar.gz"


class Stage(enum.IntEnum):
	ORIGINAL = 0
	REPACKED = 1
	NOTARIZED = 2


@dataclass(frozen=True)
class ArtifactState:
	"""The most-processed variant of an archive; later phases only read `path`."""

	stage: Stage
	path: Path


class Archive:
	def __init__(self, path: Path, temp_dir: Path) -> None:
		self.path = path
		self.name = path.name
		if match_path("go*.zip", self.name):
			self.kind = ArchiveKind.ZIP
		elif match_path("go*.tar.gz", self.name):
			self.kind = ArchiveKind.TAR_GZ
		else:
			raise SignError(reason_code="ARCHIVE_UNKNOWN_TYPE", message=f"unknown archive type: {path}", path=str(path))
		self.macos = match_path("go*darwin*.tar.gz", self.name)
		self._temp_dir = temp_dir
		self._work_dir: Path | None = None
		self._state = ArtifactState(Stage.ORIGINAL, path)

	def __repr__(self) -> str:
		return f"Archive({str(self.path)!r}, kind={self.kind.value}, stage={self._state.stage.name})"

	@property
	def work_dir(self) -> Path:
		"""Absolute scratch directory owned by this archive, created on first use."""
		if self._work_dir is None:
			self._temp_dir.mkdir(parents=True, exist_ok=True)
			created = tempfile.mkdtemp(prefix=f"sign-work-{self.name}", dir=self._temp_dir)
			self._work_dir = Path(created).resolve()
		return self._work_dir

	@property
	def state(self) -> ArtifactState:
		return self._state

	@property
	def latest_path(self) -> Path:
		return self._state.path

	@property
	def sig_path(self) -> Path:
		return self.work_dir / f"{self.name}.sig"

	@property
	def mac_harden_pack_path(self) -> Path:
		return self.work_dir / f"{self.name}.ToSignBundle.zip"

	@property
	def mac_notarize_pack_path(self) -> Path:
		return self.work_dir / f"{self.name}.ToNotarize.zip"

	@property
	def repack_path(self) -> Path:
		return self.work_dir / f"{self.name}.WithSignedContent"

	def _advance(self, stage: Stage, path: Path) -> None:
		if stage <= self._state.stage:
			raise SignError(
				reason_code="INTERNAL",
				message=f"cannot move from {self._state.stage.name} back to {stage.name}",
				path=str(self.path),
			)
		self._state = ArtifactState(stage, path)

	def entry_sign_info(self, name: str) -> SigningRequest | None:
		"""Signing details for an entry of this archive, or None if it isn't signed."""
		if self.kind is ArchiveKind.ZIP:
			if name.endswith(".exe"):
				return SigningRequest(
					archive_name=self.name,
					full_path=self.work_dir / "extract" / name,
					authenticode=PROFILE_WINDOWS_EXE,
				)
		elif self.macos:
			if match_path("go/bin/*", name) or match_path("go/pkg/tool/*/*", name):
				return SigningRequest(
					archive_name=self.name,
					full_path=self.mac_harden_pack_path,
					authenticode=PROFILE_MAC_HARDEN,
					zip=True,
				)
		return None

	def prepare_entries_to_sign(self, deadline: Deadline) -> list[SigningRequest]:
		"""
		Extract the entries that need signing and describe how to sign them.

		Zip entries land under `<work>/extract/` one file per request. macOS
		entries go into a single flat zip bundle with one request for the bundle.
		"""
		deadline.check()
		with wrap_archive_errors(self.path, f"failed to extract file from {self.path}"):
			if self.kind is ArchiveKind.ZIP:
				return self._extract_zip_entries(deadline)
			if self.macos:
				return [self._create_mac_harden_bundle(deadline)]
		return []

	def _extract_zip_entries(self, deadline: Deadline) -> list[SigningRequest]:
		log.info("Extracting files to sign from %s", self.path)
		results: list[SigningRequest] = []
		with zipfile.ZipFile(self.path) as zr:
			for info in iter_zip_entries(zr, deadline):
				if info.is_dir():
					continue
				req = self.entry_sign_info(info.filename)
				if req is None:
					continue
				with zr.open(info) as src, file_create(req.full_path) as dst:
					shutil.copyfileobj(src, dst)
				results.append(req)
		return results

	def _create_mac_harden_bundle(self, deadline: Deadline) -> SigningRequest:
		# Zipping ourselves is required: the signing service's own zip support
		# only works when the service runs on macOS.
		bundle = SigningRequest(
			archive_name=self.name,
			full_path=self.mac_harden_pack_path,
			authenticode=PROFILE_MAC_HARDEN,
			zip=True,
		)
		log.info("Creating macOS file hardening bundle at %s", bundle.full_path)
		written: set[str] = set()
		with tar_gz_open(self.path) as tr, zip_create(bundle.full_path) as zw:
			for hdr, reader in iter_tar_entries(tr, deadline):
				if not hdr.isreg() or reader is None:
					continue
				info = self.entry_sign_info(hdr.name)
				if info is None:
					continue
				if not info.zip:
					raise SignError(
						reason_code="INTERNAL",
						message=f"unexpected file to sign directly rather than include in the zip batch: {hdr.name}",
						path=str(self.path),
					)
				base = posixpath.basename(hdr.name)
				if base in written:
					raise SignError(
						reason_code="DUPLICATE_BUNDLE_ENTRY",
						message=f"duplicate file name in archive: {base}",
						path=str(self.path),
					)
				written.add(base)
				entry = zipfile.ZipInfo(base)
				entry.file_size = hdr.size
				with zw.open(entry, mode="w") as dst:
					shutil.copyfileobj(reader, dst)
		return bundle

	def repack_signed_entries(self, deadline: Deadline) -> None:
		"""Rebuild the archive with signed entries substituted, keeping all other metadata."""
		deadline.check()
		if self.kind is ArchiveKind.ZIP:
			target = self.repack_path
			log.info("Repacking signed content to %s", target)
			with (
				wrap_archive_errors(self.path, f"failed to repack {self.path}"),
				zipfile.ZipFile(self.path) as zr,
				zip_create(target) as zw,
			):
				for info in iter_zip_entries(zr, deadline):
					self._write_zip_repack_entry(zr, info, zw)
			self._advance(Stage.REPACKED, target)
		elif self.macos:
			target = self.repack_path
			log.info("Repacking hardened content to %s", target)
			# Headers and unchanged content come from the original tarball, signed
			# content from the bundle the signing service returned.
			with (
				wrap_archive_errors(self.path, f"failed to repack {self.path}"),
				tar_gz_open(self.path) as tr,
				tar_gz_create(target) as tw,
				zipfile.ZipFile(self.mac_harden_pack_path) as signed_pack,
			):
				for hdr, reader in iter_tar_entries(tr, deadline):
					self._write_tar_repack_entry(hdr, reader, signed_pack, tw)
			self._advance(Stage.REPACKED, target)

	def _write_zip_repack_entry(self, zr: zipfile.ZipFile, original: zipfile.ZipInfo, out: zipfile.ZipFile) -> None:
		entry = zipfile.ZipInfo(original.filename, date_time=original.date_time)
		entry.compress_type = original.compress_type
		entry.comment = original.comment
		entry.extra = original.extra
		entry.create_system = original.create_system
		entry.external_attr = original.external_attr

		req = None if original.is_dir() else self.entry_sign_info(original.filename)
		src: IO[bytes]
		if req is not None:
			log.info("Replacing with signed version: %s", original.filename)
			entry.file_size = req.full_path.stat().st_size
			src = req.full_path.open("rb")
		else:
			entry.file_size = original.file_size
			src = zr.open(original)
		with src, out.open(entry, mode="w") as dst:
			shutil.copyfileobj(src, dst)

	def _write_tar_repack_entry(
		self,
		hdr: tarfile.TarInfo,
		original: IO[bytes] | None,
		signed_pack: zipfile.ZipFile,
		out: tarfile.TarFile,
	) -> None:
		# Always start from the original header even when the content is replaced,
		# so nothing is lost to the zip round trip.
		entry = tarfile.TarInfo(hdr.name)
		entry.type = hdr.type
		entry.linkname = hdr.linkname
		entry.size = hdr.size
		entry.mode = hdr.mode
		entry.uid = hdr.uid
		entry.gid = hdr.gid
		entry.uname = hdr.uname
		entry.gname = hdr.gname
		entry.mtime = hdr.mtime
		entry.devmajor = hdr.devmajor
		entry.devminor = hdr.devminor
		entry.pax_headers = {k: v for k, v in hdr.pax_headers.items() if k in _PAX_TIME_KEYS}

		is_file = hdr.isreg()
		replacement: IO[bytes] | None = None
		if is_file and self.entry_sign_info(hdr.name) is not None:
			log.info("Replacing with signed version: %s", hdr.name)
			base = posixpath.basename(hdr.name)
			try:
				signed_info = signed_pack.getinfo(base)
			except KeyError as err:
				raise SignError(
					reason_code="ARCHIVE_IO",
					message=f"signed bundle has no entry {base!r} for {hdr.name!r}",
					path=str(self.mac_harden_pack_path),
				) from err
			entry.size = signed_info.file_size
			replacement = signed_pack.open(signed_info)
		try:
			# addfile copies exactly entry.size bytes and fails on a short read,
			# so a bad byte count is reported against this entry, not the next.
			out.addfile(entry, (replacement or original) if is_file else None)
		except (OSError, tarfile.TarError) as err:
			raise SignError(
				reason_code="REPACK_ENTRY",
				message=f"failed to write {entry.name!r}: {err}",
				path=str(self.path),
			) from err
		finally:
			if replacement is not None:
				replacement.close()

	def prepare_notarize(self, deadline: Deadline) -> list[SigningRequest]:
		deadline.check()
		if not self.macos:
			return []
		# No macOS artifact we produce accepts a stapled ticket (no app bundle,
		# disk image or installer). The binaries in the tarball were already
		# notarized by the hardening step; those notarizations live with Apple
		# and are fetched on demand.
		#
		# A notarizable artifact would be zipped to mac_notarize_pack_path here
		# and extracted again by unpack_notarize.
		return []

	def unpack_notarize(self, deadline: Deadline) -> None:
		deadline.check()
		if not self.macos:
			return

	def prepare_archive_signatures(self, deadline: Deadline) -> list[SigningRequest]:
		deadline.check()
		# The signer replaces the submitted file's content with the signature, so
		# submit a renamed copy and keep the archive itself intact.
		log.info("Copying file for signature generation: %s -> %s", self.latest_path, self.sig_path)
		with wrap_archive_errors(self.latest_path, "failed to copy archive for signature"):
			copy_file(self.sig_path, self.latest_path)
		return [
			SigningRequest(
				archive_name=self.name,
				full_path=self.sig_path,
				authenticode=PROFILE_DETACHED_SIG,
			)
		]

	def copy_to_destination(self, dest_dir: Path, deadline: Deadline) -> Path:
		"""Publish the finished archive and its signature; returns the published archive path."""
		deadline.check()
		with wrap_archive_errors(dest_dir, "failed to create destination directory"):
			dest_dir.mkdir(parents=True, exist_ok=True)
		log.info("Copying finished files to destination: %s", self.latest_path)
		published = dest_dir / self.name
		with wrap_archive_errors(self.latest_path, "failed to publish"):
			copy_file(published, self.latest_path)
			copy_file(dest_dir / f"{self.name}.sig", self.sig_path)
		return published
