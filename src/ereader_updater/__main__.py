"""Allow ``python -m ereader_updater``."""

from ereader_updater.cli import run

run()
