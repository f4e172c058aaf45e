# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


# Not frozen: contextlib assigns __traceback__ on exceptions leaving generator-based
# context managers.
@dataclass(eq=False)
class SignError(Exception):
	"""
	A structured, serializable error for the signing pipeline.

	Every failure aborts the run, so the error carries enough context (path,
	phase) to diagnose without re-running.
	"""

	reason_code: str
	message: str
	path: str | None = None
	phase: str | None = None

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"message": self.message,
			"path": self.path,
			"phase": self.phase,
		}

	def format_human(self) -> str:
		parts: list[str] = [f"[{self.reason_code}] {self.message}"]
		if self.path:
			parts.append(f"path={self.path}")
		if self.phase:
			parts.append(f"phase={self.phase}")
		return " ".join(parts)


@dataclass(eq=False)
class SignCancelled(SignError):
	"""Deadline exceeded. Kept distinct so callers can tell "ran out of time" from "broke"."""

	reason_code: str = "DEADLINE_EXCEEDED"
	message: str = "deadline exceeded"
