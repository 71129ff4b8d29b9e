"""Declarative reconciliation of Pocket ID users, groups, OIDC clients and memberships."""

from pocketid_sync.version import __version__

__all__ = ["__version__"]
