"""Main CLI application module.

This module provides the main entry point for the helmguard CLI.

Command Groups:
- release: Install, upgrade and roll back Helm releases, verifying that
  the released workloads become healthy
"""

import typer

from .commands import release_app

# Create the main CLI application
app = typer.Typer(
    help="🛡️  helmguard - Helm releases that fail fast",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(release_app, name="release", help="Helm release commands")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
