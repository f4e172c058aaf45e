# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import argparse
import logging
import shlex
from pathlib import Path

from goeng.logging_utils import configure_logging
from goeng.sign.batch import SignOptions, SigningBatch
from goeng.sign.errors import SignError
from goeng.sign.signer import DEFAULT_SIGNER_CMD

log = logging.getLogger(__name__)

DESCRIPTION = """
Signs Go release archives with the signing service.
Use '-n' to test the command locally.

Signs in multiple passes. Some steps only apply to certain types of archives:

1. Archive entries. Extracts specific entries from inside each archive, signs, and repacks.
2. Notarize. Reserved for macOS artifacts that accept a notarization ticket (--notarize).
3. Signatures. Creates .sig files for each archive.
4. Locally creates a .sha256 file for each archive.
"""


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(
		prog="goeng.sign",
		description=DESCRIPTION,
		formatter_class=argparse.RawDescriptionHelpFormatter,
	)
	p.add_argument("--files", default="eng/signing/tosign/*", help="Glob of Go archives to sign")
	p.add_argument("-o", "--dest-dir", type=Path, default=Path("eng/signing/signed"), help="Directory to store signed files")
	p.add_argument(
		"--temp-dir",
		type=Path,
		default=Path("eng/signing/signing-temp"),
		help="Directory to store temporary files",
	)
	p.add_argument(
		"--signing-csproj-dir",
		type=Path,
		default=Path("eng/signing"),
		help="Directory containing Sign.csproj and related files",
	)
	p.add_argument(
		"--signer-cmd",
		default=shlex.join(DEFAULT_SIGNER_CMD),
		help="Command that runs the signing project; MSBuild-style properties are appended",
	)
	p.add_argument("--notarize", action="store_true", help="Notarize macOS archives (currently a no-op)")
	p.add_argument("--sign-type", choices=["test", "real"], default="test", help="Type of signing to perform")
	p.add_argument(
		"--timeout",
		type=float,
		default=None,
		help="Timeout in seconds for the whole run; zero means no timeout. A signer process still running at the deadline is killed.",
	)
	p.add_argument(
		"-n",
		"--dry-run",
		action="store_true",
		help="Don't run the signing tooling at all; manifests are still built and logged",
	)
	p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
	p.add_argument("--log-file", type=Path, default=None, help="Also write the log to this file")
	return p


def main(argv: list[str] | None = None) -> int:
	p = _build_parser()
	args = p.parse_args(argv)
	if args.timeout is not None and args.timeout < 0:
		p.error("--timeout must not be negative")
	signer_cmd = tuple(shlex.split(args.signer_cmd))
	if not signer_cmd:
		p.error("--signer-cmd must not be empty")

	configure_logging(logging.DEBUG if args.verbose else logging.INFO, log_file=args.log_file)

	opts = SignOptions(
		files_glob=args.files,
		dest_dir=args.dest_dir,
		temp_dir=args.temp_dir,
		signing_csproj_dir=args.signing_csproj_dir,
		signer_cmd=signer_cmd,
		notarize=bool(args.notarize),
		sign_type=args.sign_type,
		timeout=args.timeout,
		dry_run=bool(args.dry_run),
	)
	try:
		SigningBatch(opts).run()
	except SignError as err:
		log.error("error: %s", err.format_human())
		return 1
	return 0
