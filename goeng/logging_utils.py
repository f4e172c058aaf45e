# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Logging setup shared by the command-line tools."""

from __future__ import annotations

import logging
from pathlib import Path

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int = logging.INFO, log_file: Path | None = None) -> logging.Logger:
	"""Configure process-wide console (and optionally file) logging."""
	root_logger = logging.getLogger()
	root_logger.setLevel(level)

	formatter = logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

	for handler in list(root_logger.handlers):
		root_logger.removeHandler(handler)

	stream_handler = logging.StreamHandler()
	stream_handler.setFormatter(formatter)
	stream_handler.setLevel(level)
	root_logger.addHandler(stream_handler)

	if log_file is not None:
		log_file.parent.mkdir(parents=True, exist_ok=True)
		file_handler = logging.FileHandler(log_file, encoding="utf-8")
		file_handler.setFormatter(formatter)
		file_handler.setLevel(level)
		root_logger.addHandler(file_handler)

	logger = logging.getLogger("goeng")
	logger.setLevel(level)
	return logger
