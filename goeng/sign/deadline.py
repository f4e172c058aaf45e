# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import time
from dataclasses import dataclass

from goeng.sign.errors import SignCancelled


@dataclass(frozen=True)
class Deadline:
	"""
	Cancellation signal threaded through every phase and entry loop.

	`at` is a `time.monotonic()` value; `None` means no deadline.
	"""

	at: float | None = None

	@staticmethod
	def after(seconds: float | None) -> Deadline:
		if not seconds:
			return Deadline()
		return Deadline(at=time.monotonic() + seconds)

	def remaining(self) -> float | None:
		if self.at is None:
			return None
		return max(0.0, self.at - time.monotonic())

	def expired(self) -> bool:
		return self.at is not None and time.monotonic() >= self.at

	def check(self) -> None:
		if self.expired():
			raise SignCancelled()


NO_DEADLINE = Deadline()
