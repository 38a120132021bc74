"""Named component registry."""
