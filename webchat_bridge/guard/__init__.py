"""Capacity banner detection and recovery."""
