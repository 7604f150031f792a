# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.__main__",
#   "purpose": "Entry point for CLI invocation via python -m.",
#   "sections": []
# }
# === /NAVMAP ===

"""Entry point for CLI invocation via python -m."""

from lossless_throttle.cli import app

if __name__ == "__main__":
    app()
