"""Parsing, rendering, comparison and the reconciliation engine."""
