"""Audited pipeline stages wrapping the import engine."""
