"""Command-line surface for kvsync."""
