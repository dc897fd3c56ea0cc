"""Command-line interface for luminus-auth."""
