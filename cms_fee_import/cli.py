"""Command-line interface for CMS fee-schedule imports"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
import structlog

from cms_fee_import import models  # noqa: F401  (registers tables on Base.metadata)
from cms_fee_import.database import Base, engine
from cms_fee_import.ingestion.datasets import DATASETS, DatasetType
from cms_fee_import.ingestion.gpci_state_avg import recompute_gpci_state_averages
from cms_fee_import.ingestion.orchestrator import ImportRequest, default_orchestrator
from cms_fee_import.logging_config import configure_logging

logger = structlog.get_logger()

DATASET_CHOICES = [d.value for d in DatasetType]


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
@click.option('--log-format', type=click.Choice(['json', 'console']), default='console')
def cli(log_level: Optional[str], log_format: str):
    """CMS fee-schedule import CLI"""
    configure_logging(log_level=log_level, log_format=log_format)
    Base.metadata.create_all(bind=engine)


@cli.command('import')
@click.argument('file', required=False, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--dataset', '-d', required=True, type=click.Choice(DATASET_CHOICES), help='Dataset type')
@click.option('--year', '-y', type=int, help='Reference year (dataset default when omitted)')
@click.option('--dry-run', is_flag=True, help='Parse and validate without writing')
def import_file(file: Optional[Path], dataset: str, year: Optional[int], dry_run: bool):
    """Import FILE as DATASET and print the JSON result"""
    request = ImportRequest(
        dataset=DatasetType(dataset),
        year=year,
        dry_run=dry_run,
        content=file.read_bytes() if file else None,
        file_name=file.name if file else None,
    )
    response = asyncio.run(default_orchestrator().run(request))
    click.echo(json.dumps(response.to_payload(), indent=2))
    if not response.ok:
        sys.exit(1)


@cli.command('gpci-state-averages')
@click.option('--dry-run', is_flag=True, help='Compute without writing')
def gpci_state_averages(dry_run: bool):
    """Recompute per-state GPCI averages from gpci_localities"""
    summary = recompute_gpci_state_averages(dry_run=dry_run)
    click.echo(json.dumps(summary.model_dump(mode='json', by_alias=True), indent=2))
    if not summary.ok:
        sys.exit(1)


@cli.command('datasets')
def list_datasets():
    """List importable datasets and their target tables"""
    for spec in DATASETS.values():
        click.echo(
            f"{spec.dataset.value:<14} {spec.table:<22} key=({', '.join(spec.natural_key)}) "
            f"default_year={spec.default_year}"
        )


if __name__ == '__main__':
    cli()
