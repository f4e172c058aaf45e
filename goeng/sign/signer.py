# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from goeng.sign.deadline import Deadline
from goeng.sign.errors import SignCancelled, SignError

log = logging.getLogger(__name__)

DEFAULT_SIGNER_CMD = ("dotnet", "build", "Sign.csproj")


class Signer(Protocol):
	def sign(self, step: str, props: str, deadline: Deadline) -> None:
		"""Sign every file listed in `props` in place, or fail the whole batch."""
		...


@dataclass(frozen=True)
class SignerOptions:
	temp_dir: Path
	csproj_dir: Path
	command: tuple[str, ...] = DEFAULT_SIGNER_CMD
	sign_type: str = "test"


class MSBuildSigner:
	"""
	Runs the signing project once per phase.

	The props file and the MSBuild binlog for step `<step>` are written to
	`<temp>/Sign<step>.props` and `<temp>/Sign<step>.binlog`.
	"""

	def __init__(self, opts: SignerOptions) -> None:
		self.opts = opts

	def build_argv(self, step: str, props_path: Path, abs_temp: Path) -> list[str]:
		return [
			*self.opts.command,
			f"/p:SignFilesDir={abs_temp}",
			f"/p:FilesToSignPropsFile={props_path}",
			"/t:AfterBuild",
			f"/p:SignType={self.opts.sign_type}",
			f"/bl:{abs_temp / f'Sign{step}.binlog'}",
			"/v:n",
		]

	def sign(self, step: str, props: str, deadline: Deadline) -> None:
		# Absolute paths, because the signer resolves relative paths against its
		# own project directory.
		try:
			self.opts.temp_dir.mkdir(parents=True, exist_ok=True)
			abs_temp = self.opts.temp_dir.resolve()
			props_path = abs_temp / f"Sign{step}.props"
			props_path.write_text(props, encoding="utf-8")
		except OSError as err:
			raise SignError(
				reason_code="ARCHIVE_IO",
				message=f"failed to write signing manifest: {err}",
				path=str(self.opts.temp_dir),
				phase=step,
			) from err

		argv = self.build_argv(step, props_path, abs_temp)
		deadline.check()
		log.info("Running: %s", shlex.join(argv))
		# On timeout subprocess.run kills the child before raising.
		try:
			subprocess.run(argv, cwd=str(self.opts.csproj_dir), check=True, timeout=deadline.remaining())
		except subprocess.TimeoutExpired as err:
			raise SignCancelled(message=f"signer timed out after {err.timeout:.1f}s", phase=step) from err
		except subprocess.CalledProcessError as err:
			raise SignError(
				reason_code="SIGNER_FAILED",
				message=f"signer exited with status {err.returncode}",
				phase=step,
			) from err
		except OSError as err:
			raise SignError(
				reason_code="SIGNER_FAILED",
				message=f"failed to start signer {argv[0]!r}: {err}",
				phase=step,
			) from err
