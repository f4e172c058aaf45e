# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import argparse
import logging
from pathlib import Path

from goeng.checksum.checksum import write_sha256_checksum_file
from goeng.logging_utils import configure_logging

log = logging.getLogger(__name__)

DESCRIPTION = """
Creates a SHA256 checksum file for each given file, in the same location and
with the same name as the file but with ".sha256" added to the end.

Generated files are compatible with "sha256sum -c".
"""


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(
		prog="write-checksum",
		description=DESCRIPTION,
		formatter_class=argparse.RawDescriptionHelpFormatter,
	)
	p.add_argument("files", nargs="+", type=Path, help="Files to checksum")
	return p


def main(argv: list[str] | None = None) -> int:
	p = _build_parser()
	args = p.parse_args(argv)
	configure_logging()
	for path in args.files:
		try:
			write_sha256_checksum_file(path)
		except OSError as err:
			log.error("error: %s", err)
			return 1
	return 0
