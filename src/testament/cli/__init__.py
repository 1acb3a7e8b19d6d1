"""Testament CLI."""
