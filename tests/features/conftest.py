"""Shared fixtures for BDD feature tests.

The in-memory API, config store and client factory come from the root
``tests/conftest.py``; step modules request them directly.
"""

from __future__ import annotations
