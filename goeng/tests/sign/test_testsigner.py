# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import json
from pathlib import Path

import pytest

from goeng.sign.request import PROFILE_DETACHED_SIG, PROFILE_WINDOWS_EXE, SigningRequest, render_props
from goeng.sign.testsigner import (
	SEED_FILE_NAME,
	TEST_SIG_FORMAT,
	load_manifest_items,
	load_or_create_seed,
	main,
	parse_msbuild_properties,
	public_key_from_seed,
	run_test_signer,
	verify_test_signature,
)


def _write_props(path: Path, requests: list[SigningRequest]) -> Path:
	path.write_text(render_props(requests), encoding="utf-8")
	return path


def _argv(props: Path, sign_dir: Path, sign_type: str = "test") -> list[str]:
	return [
		f"/p:SignFilesDir={sign_dir}",
		f"/p:FilesToSignPropsFile={props}",
		"/t:AfterBuild",
		f"/p:SignType={sign_type}",
		f"/bl:{sign_dir / 'Sign.binlog'}",
		"/v:n",
	]


def test_parse_msbuild_properties_ignores_other_switches() -> None:
	props = parse_msbuild_properties(["build", "/p:A=1", "-p:B=x=y", "/t:AfterBuild", "/p:NoValue", "/v:n"])
	assert props == {"A": "1", "B": "x=y"}


def test_load_manifest_items_reads_flags(tmp_path: Path) -> None:
	props = _write_props(
		tmp_path / "Sign.props",
		[
			SigningRequest("a.zip", tmp_path / "a & b.exe", PROFILE_WINDOWS_EXE),
			SigningRequest("a.zip", tmp_path / "bundle.zip", PROFILE_WINDOWS_EXE, zip=True, mac_app_name="Go"),
		],
	)
	items = load_manifest_items(props)
	assert [(i.path.name, i.zip, i.mac_app_name) for i in items] == [("a & b.exe", False, None), ("bundle.zip", True, "Go")]


def test_signs_detached_and_leaves_other_profiles(tmp_path: Path) -> None:
	sig = tmp_path / "go.tar.gz.sig"
	archive = tmp_path / "go.tar.gz"
	archive.write_bytes(b"archive bytes")
	sig.write_bytes(archive.read_bytes())
	exe = tmp_path / "go.exe"
	exe.write_bytes(b"MZ")
	props = _write_props(
		tmp_path / "Sign.props",
		[
			SigningRequest("go.tar.gz", sig, PROFILE_DETACHED_SIG),
			SigningRequest("go.zip", exe, PROFILE_WINDOWS_EXE),
		],
	)

	run_test_signer(_argv(props, tmp_path))

	assert exe.read_bytes() == b"MZ"
	doc = json.loads(sig.read_text(encoding="utf-8"))
	assert doc["format"] == TEST_SIG_FORMAT
	pub = public_key_from_seed(load_or_create_seed(tmp_path / SEED_FILE_NAME))
	assert verify_test_signature(archive, sig, pub)

	archive.write_bytes(b"tampered")
	assert not verify_test_signature(archive, sig, pub)


def test_seed_is_reused_between_runs(tmp_path: Path) -> None:
	archive = tmp_path / "go.zip"
	archive.write_bytes(b"zip")
	for name in ("one.sig", "two.sig"):
		(tmp_path / name).write_bytes(b"zip")
	run_test_signer(_argv(_write_props(tmp_path / "1.props", [SigningRequest("go.zip", tmp_path / "one.sig", PROFILE_DETACHED_SIG)]), tmp_path))
	run_test_signer(_argv(_write_props(tmp_path / "2.props", [SigningRequest("go.zip", tmp_path / "two.sig", PROFILE_DETACHED_SIG)]), tmp_path))
	assert (tmp_path / "one.sig").read_bytes() == (tmp_path / "two.sig").read_bytes()


def test_refuses_real_signing(tmp_path: Path) -> None:
	props = _write_props(tmp_path / "Sign.props", [])
	with pytest.raises(ValueError, match="SignType=test"):
		run_test_signer(_argv(props, tmp_path, sign_type="real"))
	assert main(_argv(props, tmp_path, sign_type="real")) == 1


def test_missing_file_fails_before_signing_anything(tmp_path: Path) -> None:
	present = tmp_path / "present.sig"
	present.write_bytes(b"payload")
	props = _write_props(
		tmp_path / "Sign.props",
		[
			SigningRequest("a.zip", present, PROFILE_DETACHED_SIG),
			SigningRequest("b.zip", tmp_path / "missing.sig", PROFILE_DETACHED_SIG),
		],
	)
	assert main(_argv(props, tmp_path)) == 1
	assert present.read_bytes() == b"payload"
	assert not (tmp_path / SEED_FILE_NAME).exists()


def test_requires_manifest_properties(tmp_path: Path) -> None:
	assert main(["/p:SignType=test"]) == 1
