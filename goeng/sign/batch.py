# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Drives every discovered archive through the signing phases.

All archives finish a phase before any archive starts the next one, and each
phase makes at most one signer call covering every archive.
"""

from __future__ import annotations

import glob
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

from goeng.checksum.checksum import CHECKSUM_SUFFIX, write_sha256_checksum_file
from goeng.sign.archive import Archive
from goeng.sign.archiveutil import wrap_archive_errors
from goeng.sign.deadline import NO_DEADLINE, Deadline
from goeng.sign.errors import SignError
from goeng.sign.request import SigningRequest, render_props
from goeng.sign.signer import DEFAULT_SIGNER_CMD, MSBuildSigner, Signer, SignerOptions

log = logging.getLogger(__name__)

STEP_INDIVIDUAL = "1-Individual"
STEP_NOTARIZE = "2-Notarize"
STEP_SIGS = "3-Sigs"


@dataclass(frozen=True)
class SignOptions:
	files_glob: str = "eng/signing/tosign/*"
	dest_dir: Path = Path("eng/signing/signed")
	temp_dir: Path = Path("eng/signing/signing-temp")
	signing_csproj_dir: Path = Path("eng/signing")
	signer_cmd: tuple[str, ...] = DEFAULT_SIGNER_CMD
	notarize: bool = False
	sign_type: str = "test"
	# Seconds; None or 0 means no timeout.
	timeout: float | None = None
	dry_run: bool = False


def find_archives(files_glob: str, temp_dir: Path, deadline: Deadline = NO_DEADLINE) -> list[Archive]:
	archives: list[Archive] = []
	# All results land in one destination directory, so names must be unique.
	# Compare lowercase: signing runs on a case-insensitive filesystem.
	seen: dict[str, str] = {}

	for f in sorted(glob.glob(files_glob)):
		deadline.check()
		# Checksum files are always regenerated.
		if f.endswith(CHECKSUM_SUFFIX):
			continue

		path = Path(f)
		lower = path.name.lower()
		if lower in seen:
			raise SignError(
				reason_code="DUPLICATE_ARCHIVE",
				message=f"duplicate archive {f!r}, already found {seen[lower]!r} (comparing lowercase filename)",
				path=f,
			)
		seen[lower] = f
		archives.append(Archive(path, temp_dir))

	if not archives:
		raise SignError(reason_code="NO_ARCHIVES", message=f"no archives found to sign matching glob {files_glob!r}")
	return archives


def flat_map(archives: list[Archive], f: Callable[[Archive], list[SigningRequest]]) -> list[SigningRequest]:
	results: list[SigningRequest] = []
	for a in archives:
		results.extend(f(a))
	return results


@contextmanager
def _in_phase(step: str) -> Iterator[None]:
	try:
		yield
	except SignError as err:
		if err.phase is None:
			err.phase = step
		raise


class SigningBatch:
	def __init__(self, opts: SignOptions, signer: Signer | None = None) -> None:
		self.opts = opts
		if signer is None:
			signer = MSBuildSigner(
				SignerOptions(
					temp_dir=opts.temp_dir,
					csproj_dir=opts.signing_csproj_dir,
					command=opts.signer_cmd,
					sign_type=opts.sign_type,
				)
			)
		self.signer = signer
		self.deadline = NO_DEADLINE
		self.archives: list[Archive] = []
		# step -> requests and manifest text, in the order the phases ran.
		self.requests: dict[str, list[SigningRequest]] = {}
		self.manifests: dict[str, str] = {}
		self.published: list[Path] = []

	def run(self, deadline: Deadline | None = None) -> list[Path]:
		"""
		Run every phase; returns the published archive paths.

		The timeout counts from here unless an explicit `deadline` is given.
		"""
		if deadline is None:
			deadline = Deadline.after(self.opts.timeout)
		self.deadline = d = deadline
		with _in_phase("discover"):
			self.archives = find_archives(self.opts.files_glob, self.opts.temp_dir, d)

		log.info("Signing individual files extracted from archives")
		with _in_phase(STEP_INDIVIDUAL):
			self.sign(STEP_INDIVIDUAL, flat_map(self.archives, lambda a: a.prepare_entries_to_sign(d)))
			for a in self.archives:
				a.repack_signed_entries(d)

		if self.opts.notarize:
			log.info("Notarizing macOS archives")
			with _in_phase(STEP_NOTARIZE):
				self.sign(STEP_NOTARIZE, flat_map(self.archives, lambda a: a.prepare_notarize(d)))
				for a in self.archives:
					a.unpack_notarize(d)
		else:
			log.info("Skipping notarizing macOS archives")

		log.info("Creating signature files")
		with _in_phase(STEP_SIGS):
			self.sign(STEP_SIGS, flat_map(self.archives, lambda a: a.prepare_archive_signatures(d)))

		log.info("Copying finished files to destination")
		with _in_phase("publish"):
			self.published = [a.copy_to_destination(self.opts.dest_dir, d) for a in self.archives]

		log.info("Generating checksum files")
		with _in_phase("checksum"):
			for path in self.published:
				d.check()
				with wrap_archive_errors(path, "failed to write checksum"):
					write_sha256_checksum_file(path)

		return self.published

	def sign(self, step: str, requests: list[SigningRequest]) -> None:
		self.requests[step] = list(requests)
		props = render_props(requests)
		self.manifests[step] = props
		log.info("Signing with props file content:\n%s", props)
		if self.opts.dry_run:
			log.info("Dry run: skipping signing.")
			return
		self.deadline.check()
		self.signer.sign(step, props, self.deadline)
