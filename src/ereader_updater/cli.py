"""Command line entry point: ``updater <archive-path> <stage> [<product>]``."""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

import click
from pydantic import ValidationError

from ereader_updater.config import UpdaterConfig
from ereader_updater.models.device import select_product
from ereader_updater.models.status import Stage
from ereader_updater.services.orchestrator import EXIT_FAILURE, StageOrchestrator
from ereader_updater.utils.logging import setup_logger


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("archive", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("stage")
@click.argument("product", required=False)
def cli(archive: Path, stage: str, product: Optional[str]) -> int:
    """Apply an update ARCHIVE in STAGE (stage1, stage2) or build one (pack).

    PRODUCT defaults to $PRODUCT, then to monzaTolino.
    """
    try:
        config = UpdaterConfig.from_env()
    except ValidationError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        return EXIT_FAILURE

    logger = setup_logger(
        "ereader_updater", config.log_file, level=getattr(logging, config.log_level)
    )

    try:
        selected = Stage(stage)
    except ValueError:
        logger.error(f"Invalid usage! Unknown stage {stage!r}")
        return EXIT_FAILURE

    orchestrator = StageOrchestrator(config)
    return asyncio.run(
        orchestrator.run(archive, selected, select_product(product, os.environ))
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI and return the process exit code.

    Usage errors (wrong argument count) exit with 1 like every other fatal
    condition, not click's default of 2.
    """
    try:
        return cli.main(
            args=list(argv) if argv is not None else None,
            prog_name="updater",
            standalone_mode=False,
        )
    except click.ClickException as e:
        e.show()
        click.echo("Invalid usage!", err=True)
        return EXIT_FAILURE
    except click.Abort:
        return EXIT_FAILURE


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
