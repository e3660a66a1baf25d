"""
Backup access for Keychain Editor.

Handles:
- Running the irestore helper (dump, restore, re-encrypt)
- Per-request sessions with a temporary working area
"""

from .irestore import IRestore
from .session import KeychainSession, check_backup_request

__all__ = ["IRestore", "KeychainSession", "check_backup_request"]
