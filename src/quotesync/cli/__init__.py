"""quotesync command-line interface (``quotesync`` entry point)."""
