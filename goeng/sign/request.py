# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable
from xml.sax.saxutils import quoteattr

# Signing profiles understood by the signing service.
PROFILE_WINDOWS_EXE = "Microsoft400"
PROFILE_MAC_HARDEN = "MacDeveloperHarden"
PROFILE_DETACHED_SIG = "LinuxSignManagedLanguageCompiler"


@dataclass(frozen=True)
class SigningRequest:
	"""
	One file handed to the signer, which replaces it in place.

	`archive_name` is the base name of the archive that produced the request; it
	is a lookup key, the request never owns the archive.
	"""

	archive_name: str
	full_path: Path
	authenticode: str
	# The file is a zip payload, e.g. for macOS hardening.
	zip: bool = False
	# For notarization.
	mac_app_name: str | None = None

	def to_msbuild_item(self) -> str:
		attrs = [
			f"Include={quoteattr(str(self.full_path))}",
			f"Authenticode={quoteattr(self.authenticode)}",
		]
		if self.zip:
			attrs.append('Zip="true"')
		if self.mac_app_name:
			attrs.append(f"MacAppName={quoteattr(self.mac_app_name)}")
		return "    <FilesToSign " + " ".join(attrs) + " />\n"


def render_props(requests: Iterable[SigningRequest]) -> str:
	"""Render a phase manifest as the MSBuild props file the signing project imports."""
	parts = ["<Project>\n", "  <ItemGroup>\n"]
	parts.extend(r.to_msbuild_item() for r in requests)
	parts.append("  </ItemGroup>\n")
	parts.append("</Project>\n")
	return "".join(parts)
