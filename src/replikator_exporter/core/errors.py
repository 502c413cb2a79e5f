# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Error taxonomy for the exporter.

None of these ever reach a scrape caller: the collection pipeline classifies
them and decides whether the current publish step is aborted or skipped.
"""


class ExporterError(Exception):
    """Base class for all exporter errors."""

    ...


class DecodeError(ExporterError):
    """
    The external tool produced output that is not structured data we can read
    (invalid JSON, or a JSON document whose top level is not an object).
    """

    def __init__(self, message: str, *, raw_preview: str = "") -> None:
        super().__init__(message)
        self.raw_preview = raw_preview


class InvocationError(ExporterError):
    """The external tool could not be run, timed out, or exited non-zero."""

    def __init__(self, message: str, *, args: str = "", returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.tool_args = args
        self.returncode = returncode
        self.stderr = stderr


class ConfigError(ExporterError, ValueError):
    """Invalid exporter configuration."""

    ...
