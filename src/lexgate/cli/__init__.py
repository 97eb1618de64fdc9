"""Command line interface (``lexgate``)."""
