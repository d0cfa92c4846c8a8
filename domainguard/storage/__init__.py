"""Persistent storage for domainguard."""

from domainguard.storage.store import BlockedDomainStore, default_data_dir

__all__ = ["BlockedDomainStore", "default_data_dir"]
