"""HTTP surface: dependency factories and router assembly."""
