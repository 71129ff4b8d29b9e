"""Declared state, identity resolution, drift detection and scheduling."""
