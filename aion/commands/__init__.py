"""Command implementations behind the `aion` CLI."""
