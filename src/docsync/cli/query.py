"""Typer command group for searching indexed sources."""

from __future__ import annotations

from pathlib import Path

import typer

from docsync.cli import context as cli_context
from docsync.cli.context import CLIContext
from docsync.query import QueryResponse, ResponseKind

__all__ = ["create_query_app", "emit_response"]

_FAILED_KINDS = frozenset({ResponseKind.INVALID, ResponseKind.ERROR})


def emit_response(response: QueryResponse) -> None:
    """Print ``response`` and exit non-zero for invalid or failed queries."""

    if response.kind in _FAILED_KINDS:
        typer.secho(response.render(), fg=typer.colors.RED)
        raise typer.Exit(code=cli_context.EXIT_FAILURE)
    typer.echo(response.render())


def _require_context(ctx: typer.Context) -> CLIContext:
    context = getattr(ctx, "obj", None)
    if not isinstance(context, CLIContext):
        typer.secho(
            "Internal error: query context not initialized.",
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)
    return context


def create_query_app() -> typer.Typer:
    app = typer.Typer(
        name="query",
        help="Search indexed documentation and code.",
        no_args_is_help=True,
        invoke_without_command=False,
    )

    @app.callback()
    def query_callback(
        ctx: typer.Context,
        config: Path | None = typer.Option(
            None,
            "--config",
            "-c",
            envvar="DOCSYNC_CONFIG",
            help="Configuration file supplying query and embedding settings.",
        ),
        log_level: str | None = typer.Option(
            None,
            "--log-level",
            "-l",
            help="Override the logging level (DEBUG/INFO/WARNING/ERROR).",
        ),
    ) -> None:
        ctx.obj = cli_context.load_context(
            config,
            command="query",
            log_level=log_level,
        )

    @app.command("docs", help="Search documentation chunks.")
    def docs_command(
        ctx: typer.Context,
        text: str = typer.Argument(..., help="Natural language query."),
        product: str | None = typer.Option(None, "--product", "-p"),
        version: str | None = typer.Option(None, "--version", "-v"),
        db_name: str | None = typer.Option(
            None,
            "--db-name",
            help="Explicit database file or collection name.",
        ),
        url_prefix: str | None = typer.Option(
            None,
            "--url-prefix",
            help="Only keep results whose url starts with this prefix.",
        ),
        limit: int | None = typer.Option(None, "--limit", "-n", min=1),
    ) -> None:
        context = _require_context(ctx)
        service = cli_context.build_query_service(context)
        emit_response(
            service.search_documents(
                text,
                product_name=product,
                version=version,
                db_name=db_name,
                url_prefix=url_prefix,
                limit=limit,
            )
        )

    @app.command("code", help="Search indexed source code.")
    def code_command(
        ctx: typer.Context,
        text: str = typer.Argument(..., help="Natural language query."),
        product: str | None = typer.Option(None, "--product", "-p"),
        version: str | None = typer.Option(None, "--version", "-v"),
        db_name: str | None = typer.Option(None, "--db-name"),
        repo: str | None = typer.Option(None, "--repo"),
        branch: str | None = typer.Option(None, "--branch"),
        url_prefix: str | None = typer.Option(None, "--url-prefix"),
        ext: list[str] = typer.Option(
            None,
            "--ext",
            metavar="EXT",
            help="Restrict results to files with this extension (repeatable).",
        ),
        limit: int | None = typer.Option(None, "--limit", "-n", min=1),
    ) -> None:
        context = _require_context(ctx)
        service = cli_context.build_query_service(context)
        emit_response(
            service.search_code(
                text,
                product_name=product,
                version=version,
                db_name=db_name,
                repo=repo,
                branch=branch,
                url_prefix=url_prefix,
                extensions=tuple(ext or ()),
                limit=limit,
            )
        )

    return app
