"""Cross-cutting request concerns."""
