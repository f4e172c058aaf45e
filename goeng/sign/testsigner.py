# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Local stand-in for the signing service, for `SignType=test` only.

Accepts the same arguments the signing project gets (`/p:Name=Value`, other
switches ignored) so it can replace `dotnet build Sign.csproj` via
`--signer-cmd`. Detached-signature requests get an Ed25519 signature document;
every other profile leaves the file unchanged, since a test identity does not
alter binaries.

The key is a base64 raw 32-byte Ed25519 seed at `<SignFilesDir>/TestSign.seed`,
created on first use.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from goeng.logging_utils import configure_logging
from goeng.sign.request import PROFILE_DETACHED_SIG

log = logging.getLogger(__name__)

TEST_SIG_FORMAT = "goeng-test-sig"
SEED_FILE_NAME = "TestSign.seed"


def key_id(pubkey_raw: bytes) -> str:
	"""`ed25519:` followed by base64 of the SHA-256 of the raw public key."""
	return "ed25519:" + base64.b64encode(hashlib.sha256(pubkey_raw).digest()).decode("ascii")


def public_key_from_seed(seed32: bytes) -> bytes:
	return (
		Ed25519PrivateKey.from_private_bytes(seed32)
		.public_key()
		.public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)
	)


@dataclass(frozen=True)
class ManifestItem:
	path: Path
	authenticode: str
	zip: bool = False
	mac_app_name: str | None = None


def parse_msbuild_properties(argv: list[str]) -> dict[str, str]:
	props: dict[str, str] = {}
	for arg in argv:
		if not arg.startswith(("/p:", "-p:")):
			continue
		key, sep, value = arg[3:].partition("=")
		if sep:
			props[key] = value
	return props


def load_manifest_items(props_path: Path) -> list[ManifestItem]:
	root = ET.parse(props_path).getroot()
	items: list[ManifestItem] = []
	for el in root.iter("FilesToSign"):
		include = el.get("Include")
		authenticode = el.get("Authenticode")
		if not include or not authenticode:
			raise ValueError(f"FilesToSign item missing Include/Authenticode in {props_path}")
		items.append(
			ManifestItem(
				path=Path(include),
				authenticode=authenticode,
				zip=el.get("Zip") == "true",
				mac_app_name=el.get("MacAppName"),
			)
		)
	return items


def load_or_create_seed(path: Path) -> bytes:
	if not path.exists():
		path.parent.mkdir(parents=True, exist_ok=True)
		path.write_text(base64.b64encode(os.urandom(32)).decode("ascii") + "\n", encoding="utf-8")
		log.info("Generated test signing key %s", path)
	try:
		raw = base64.b64decode(path.read_text(encoding="utf-8").strip(), validate=True)
	except ValueError as err:
		raise ValueError(f"invalid base64 in key seed file {path}") from err
	if len(raw) != 32:
		raise ValueError("ed25519 private key seed must decode to 32 bytes")
	return raw


def sign_detached(path: Path, seed32: bytes) -> None:
	"""Replace the content of `path` with a detached signature over that content."""
	message = path.read_bytes()
	sig = Ed25519PrivateKey.from_private_bytes(seed32).sign(message)
	doc = {
		"format": TEST_SIG_FORMAT,
		"version": 0,
		"sha256": "sha256:" + hashlib.sha256(message).hexdigest(),
		"kid": key_id(public_key_from_seed(seed32)),
		"sig": base64.b64encode(sig).decode("ascii"),
	}
	path.write_text(json.dumps(doc, sort_keys=True, separators=(",", ":")) + "\n", encoding="utf-8")


def verify_test_signature(payload_path: Path, sig_path: Path, pubkey_raw: bytes) -> bool:
	doc = json.loads(sig_path.read_text(encoding="utf-8"))
	if not isinstance(doc, dict) or doc.get("format") != TEST_SIG_FORMAT or doc.get("version") != 0:
		raise ValueError(f"unsupported signature format in {sig_path}")
	message = payload_path.read_bytes()
	if doc.get("sha256") != "sha256:" + hashlib.sha256(message).hexdigest():
		return False
	if doc.get("kid") != key_id(pubkey_raw):
		return False
	try:
		Ed25519PublicKey.from_public_bytes(pubkey_raw).verify(base64.b64decode(doc["sig"], validate=True), message)
	except InvalidSignature:
		return False
	return True


def run_test_signer(argv: list[str]) -> None:
	props = parse_msbuild_properties(argv)
	sign_type = props.get("SignType", "test")
	if sign_type != "test":
		raise ValueError(f"test signer only supports SignType=test, got {sign_type!r}")
	props_file = props.get("FilesToSignPropsFile")
	sign_dir = props.get("SignFilesDir")
	if not props_file or not sign_dir:
		raise ValueError("missing /p:FilesToSignPropsFile or /p:SignFilesDir")

	items = load_manifest_items(Path(props_file))
	# Check every file before touching any: the batch is all-or-nothing.
	for item in items:
		if not item.path.is_file():
			raise ValueError(f"file to sign not found: {item.path}")

	seed32 = load_or_create_seed(Path(sign_dir) / SEED_FILE_NAME)
	for item in items:
		if item.authenticode == PROFILE_DETACHED_SIG:
			log.info("Test-signing %s (detached signature)", item.path)
			sign_detached(item.path, seed32)
		else:
			log.info("Test-signing %s (%s): content unchanged", item.path, item.authenticode)


def main(argv: list[str] | None = None) -> int:
	configure_logging()
	try:
		run_test_signer(sys.argv[1:] if argv is None else argv)
	except (ValueError, OSError, ET.ParseError) as err:
		log.error("error: %s", err)
		return 1
	return 0


if __name__ == "__main__":
	sys.exit(main())
