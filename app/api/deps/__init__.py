"""API dependencies - re-exports from submodules."""

from .auth import (
    CurrentAccount,
    CurrentAccountId,
    DbSession,
    decode_account_id,
    get_current_account,
    get_current_account_id,
    security,
)

__all__ = [
    "security",
    "decode_account_id",
    "get_current_account_id",
    "get_current_account",
    "DbSession",
    "CurrentAccountId",
    "CurrentAccount",
]
