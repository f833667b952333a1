"""Command-line interface for :mod:`docsync`.

Example:
    >>> import typer
    >>> from docsync.cli import create_app
    >>> app = create_app()
    >>> isinstance(app, typer.Typer)
    True
"""

from __future__ import annotations

from pathlib import Path

import typer

from docsync.cli import context as cli_context
from docsync.cli.query import create_query_app, emit_response
from docsync.core.config import render_config_template, starter_config
from docsync.sync import RunReport, SyncRunner

_app_help = (
    "Keep vector indexes of documentation and code in sync, and search them."
    "\n\n"
    "Use `docsync init` to write a starter `docsync.toml`."
)


def _emit_run_report(report: RunReport) -> None:
    for name, stats in report.stats.items():
        typer.echo(
            f"  {name}: {stats.mode} documents={stats.documents} "
            f"skipped={stats.skipped} embedded={stats.embedded} "
            f"failed={stats.failed} deleted={stats.deleted}"
        )
    for name in report.skipped:
        typer.secho(f"  {name}: skipped (no content provider)", fg=typer.colors.YELLOW)
    for failure in report.failures:
        typer.secho(f"  {failure.source}: {failure.error}", fg=typer.colors.RED)


def create_app() -> "typer.Typer":
    """Return the Typer application powering the ``docsync`` CLI."""

    app = typer.Typer(
        help=_app_help,
        no_args_is_help=True,
        rich_markup_mode="rich",
        invoke_without_command=False,
        cls=typer.core.TyperGroup,
    )

    app.add_typer(create_query_app(), name="query")

    @app.callback()
    def main_callback() -> None:
        return None

    @app.command("init", help="Write a starter configuration file.")
    def init_command(
        path: Path = typer.Argument(
            Path("docsync.toml"),
            help="Where to write the configuration file.",
        ),
        docs_root: Path = typer.Option(
            Path("docs"),
            "--docs-root",
            help="Directory indexed by the starter local_directory source.",
        ),
        force: bool = typer.Option(
            False,
            "--force",
            "-f",
            help="Overwrite an existing configuration file.",
        ),
    ) -> None:
        target = path.expanduser()
        if target.exists() and not force:
            cli_context.exit_with_error(
                f"{target} already exists; pass --force to overwrite it."
            )
        config = starter_config(docs_root)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(render_config_template(config), encoding="utf-8")
        typer.secho("Configuration written", fg=typer.colors.GREEN, bold=True)
        typer.echo(f"  config: {target}")
        typer.echo(f"  sources: {len(config.sources)}")

    @app.command("sync", help="Synchronize configured sources into their indexes.")
    def sync_command(
        config: Path = typer.Argument(..., help="Configuration file to run."),
        source: str | None = typer.Option(
            None,
            "--source",
            "-s",
            help="Only run the source with this product name or label.",
        ),
        full: bool = typer.Option(
            False,
            "--full",
            help="Ignore recorded commits and rescan code sources fully.",
        ),
        log_level: str | None = typer.Option(
            None,
            "--log-level",
            "-l",
            help="Override the logging level (DEBUG/INFO/WARNING/ERROR).",
        ),
    ) -> None:
        context = cli_context.load_context(
            config,
            command="sync",
            log_level=log_level,
        )
        sources = tuple(context.config.iter_sources())
        if source is not None and not any(
            source in (item.name, item.product_name) for item in sources
        ):
            cli_context.exit_with_error(
                f"No configured source matches {source!r}.",
                code=cli_context.EXIT_CONFIG,
            )

        embedder = cli_context.build_embedder(context)
        runner = SyncRunner(
            embedder,
            logger=context.logger,
            dimensions=context.config.embedding.dimensions,
        )
        report = runner.run(sources, only=source, force_full=full)

        if report.ok:
            typer.secho("Sync complete", fg=typer.colors.GREEN, bold=True)
        else:
            typer.secho("Sync finished with failures", fg=typer.colors.RED, bold=True)
        _emit_run_report(report)
        if not report.ok:
            raise typer.Exit(code=cli_context.EXIT_FAILURE)

    @app.command("chunks", help="Print every chunk of one indexed document.")
    def chunks_command(
        url: str = typer.Argument(..., help="Document url as stored in the index."),
        product: str | None = typer.Option(None, "--product", "-p"),
        version: str | None = typer.Option(None, "--version", "-v"),
        db_name: str | None = typer.Option(None, "--db-name"),
        start: int | None = typer.Option(
            None,
            "--start",
            min=0,
            help="First chunk position (0-based, inclusive).",
        ),
        end: int | None = typer.Option(
            None,
            "--end",
            min=0,
            help="Last chunk position (0-based, inclusive).",
        ),
        config: Path | None = typer.Option(
            None,
            "--config",
            "-c",
            envvar="DOCSYNC_CONFIG",
        ),
    ) -> None:
        context = cli_context.load_context(config, command="chunks")
        service = cli_context.build_query_service(context, with_embeddings=False)
        emit_response(
            service.get_chunks(
                url,
                product_name=product,
                version=version,
                db_name=db_name,
                start=start,
                end=end,
            )
        )

    return app


__all__ = ["create_app"]
