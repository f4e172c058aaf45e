# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from goeng.checksum.checksum import sha256_file, write_sha256_checksum_file

__all__ = ["sha256_file", "write_sha256_checksum_file"]
