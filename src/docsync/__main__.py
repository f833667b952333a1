"""Console-script entry point for :mod:`docsync`."""

from __future__ import annotations

from docsync.cli import create_app


def main() -> None:
    """Run the ``docsync`` command-line application."""

    app = create_app()
    app(prog_name="docsync")


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    main()


__all__ = ["main"]
