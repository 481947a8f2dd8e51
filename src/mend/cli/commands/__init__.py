"""Mend CLI subcommands."""
