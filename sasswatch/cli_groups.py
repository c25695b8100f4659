"""Command groups for the sasswatch CLI."""

from __future__ import annotations

import typer

# ── Configuration group ──────────────────────────────────────
config_grp = typer.Typer(
    help="⚙️  Configuration: render and watch defaults.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
