"""Deliveryforge CLI — Typer-based command-line interface.

Provides the ``deliveryforge`` command with subcommands for planning and
running goal sets for a push, disposing of a repository, managing the
deployment freeze, and listing extension packs.

All output uses Rich for formatted terminal display.
"""
