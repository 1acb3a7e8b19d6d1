"""Testament - discover, run and monitor .NET tests."""

__version__ = "0.1.0"
