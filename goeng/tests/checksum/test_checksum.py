# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from goeng.checksum import sha256_file, write_sha256_checksum_file
from goeng.checksum.cli import main


def test_checksum_line_uses_base_name(tmp_path: Path) -> None:
	archive = tmp_path / "nested" / "go1.23.3.linux-amd64.tar.gz"
	archive.parent.mkdir()
	archive.write_bytes(b"hello\n")
	out = write_sha256_checksum_file(archive)
	assert out == tmp_path / "nested" / "go1.23.3.linux-amd64.tar.gz.sha256"
	assert out.read_bytes() == (
		b"5891b5b522d5df086d0ff0b110fbd9d21bb4fc7163af34d08286a2e846f6be03  go1.23.3.linux-amd64.tar.gz\n"
	)


def test_sha256_file_spans_chunks(tmp_path: Path) -> None:
	data = b"x" * (3 * 1024 * 1024 + 7)
	path = tmp_path / "big.bin"
	path.write_bytes(data)
	assert sha256_file(path) == hashlib.sha256(data).hexdigest()


def test_cli_writes_each_file(tmp_path: Path) -> None:
	paths = [tmp_path / "a.zip", tmp_path / "b.tar.gz"]
	for p in paths:
		p.write_bytes(p.name.encode())
	assert main([str(p) for p in paths]) == 0
	for p in paths:
		assert Path(str(p) + ".sha256").read_text(encoding="utf-8") == f"{hashlib.sha256(p.name.encode()).hexdigest()}  {p.name}\n"


def test_cli_missing_file_fails(tmp_path: Path) -> None:
	assert main([str(tmp_path / "missing.zip")]) == 1


def test_cli_requires_arguments() -> None:
	with pytest.raises(SystemExit) as excinfo:
		main([])
	assert excinfo.value.code == 2
