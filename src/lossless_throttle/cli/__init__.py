"""CLI subpackage for simulation and configuration checks."""

from lossless_throttle.cli.app import app

__all__ = ["app"]
