"""Internal REST endpoint helpers."""
