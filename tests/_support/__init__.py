"""
Test support utilities for track-migrate tests.

Helpers that don't fit as pytest fixtures but are shared by several test
modules live here (see ``fake_psql``).
"""
