"""Persistent record cache."""
