"""Feature packages: document store, catalog and scenario runs."""
