"""pagelint: capture rendered pages from a local server and lint their markup."""

__version__ = "1.0.0"
