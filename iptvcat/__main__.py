"""Click-based command line entry point for iptvcat."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Iterable, Optional, Set

import click

from . import __version__
from .config import ConfigError
from .generate import DEFAULT_OUTPUT_DIR, GenerateError, GenerateResult, run_generate
from .logging_conf import configure_logging
from .verify import run_verify, summarise


@click.group(help="IPTV playlist verification and catalog toolkit")
@click.version_option(__version__)
@click.option("--verbose", is_flag=True, help="Enable verbose logging output.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """
    Root CLI group configuring logging before subcommands execute.
    """

    configure_logging("DEBUG" if verbose else "INFO")
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command("verify")
@click.option("--debug", is_flag=True, default=None, help="Log the reason for every failed probe.")
@click.option("--offline", is_flag=True, default=None, help="Skip probing and reference downloads.")
@click.option("-d", "--delay", "delay_ms", default=None, type=int, help="Delay between probes in milliseconds.")
@click.option("-t", "--timeout", "timeout_ms", default=None, type=int, help="Probe timeout in milliseconds.")
@click.option("-c", "--country", "countries", default=None, help="Comma separated playlist codes to process.")
@click.option("-e", "--exclude", default=None, help="Comma separated playlist codes to skip.")
@click.option(
    "--channels-dir",
    default=None,
    type=click.Path(path_type=Path, file_okay=False),
    help="Directory containing the country playlists.",
)
@click.option("--workers", default=None, type=int, help="Number of concurrent probes.")
@click.option("--config", "config_path", default=None, type=click.Path(path_type=Path, exists=True, dir_okay=False))
def cli_verify(**kwargs: Any) -> None:
    """Probe every stream, refresh statuses and rewrite mirror URLs."""

    try:
        reports = run_verify(**_transform_verify_kwargs(kwargs))
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    totals = summarise(reports)
    logging.getLogger(__name__).info(
        "checked %d channels in %d playlists: %d online, %d failed, %d skipped, %d errors, %d files updated",
        totals["channels"],
        totals["playlists"],
        totals["online"],
        totals["failed"],
        totals["skipped"],
        totals["errors"],
        totals["updated"],
    )


@cli.command("generate")
@click.option(
    "--channels-dir",
    default=Path("channels"),
    show_default=True,
    type=click.Path(path_type=Path, file_okay=False),
)
@click.option(
    "--output",
    default=DEFAULT_OUTPUT_DIR,
    show_default=True,
    type=click.Path(path_type=Path, file_okay=False),
)
def cli_generate(channels_dir: Path, output: Path) -> None:
    """Regenerate the published index playlists and channels.json."""

    try:
        result: GenerateResult = run_generate(channels_dir=channels_dir, output=output)
    except GenerateError as exc:
        raise click.ClickException(str(exc)) from exc
    logging.getLogger(__name__).info("generated %d files -> %s", len(result.files), result.output_path)


def _transform_verify_kwargs(kwargs: dict[str, Any]) -> dict[str, Any]:
    mutated = dict(kwargs)
    mutated["countries"] = _normalise(mutated.get("countries"))
    mutated["exclude"] = _normalise(mutated.get("exclude"))
    return mutated


def _normalise(value: Optional[Any]) -> Optional[Set[str]]:
    if value is None:
        return None
    text = str(value)
    return {item.strip().lower() for item in text.split(",") if item and item.strip()} or None


def main(argv: Optional[Iterable[str]] = None) -> int:
    """
    Entry point returning an exit code for setuptools console scripts.
    """

    argv_list = list(argv if argv is not None else sys.argv[1:])
    try:
        cli.main(args=argv_list, prog_name="iptvcat", standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        return 1
    except click.Abort:
        return 1
    except SystemExit as exc:
        return int(exc.code or 0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
