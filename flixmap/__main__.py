"""Module executed when running ``python -m flixmap``."""

from __future__ import annotations

from .cli import app


def main() -> None:
    """Execute the Typer application."""

    app()


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
