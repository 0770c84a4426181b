"""Command line interface (``courier``)."""
