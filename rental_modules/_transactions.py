"""
Shared transaction helpers for module services.

Architecture: Modules layer.  Imports only sqlalchemy.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy.orm import Session


class ResultLike(Protocol):
    @property
    def is_success(self) -> bool: ...


def commit_or_rollback(session: Session, result: ResultLike) -> None:
    """Commit the session if the operation succeeded, otherwise roll back."""
    if result.is_success:
        session.commit()
    else:
        session.rollback()
