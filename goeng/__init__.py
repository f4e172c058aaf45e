# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Engineering tooling for the downstream Go toolchain distribution.

Pinned boundary:
- `goeng.sign` owns the release signing pipeline (archives in, signed archives out).
- `goeng.checksum` is a leaf: it must not import `goeng.sign`.
"""
