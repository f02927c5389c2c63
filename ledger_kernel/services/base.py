"""
BaseService -- abstract base for all kernel services.

Every write service receives a SQLAlchemy ``Session`` from its caller and
persists with ``session.flush()``.  Services never call ``commit()`` or
``rollback()`` on the session: the caller (orchestrator, rate updater or
test harness) owns the transaction boundary so multi-step postings stay
atomic.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-side queries; those live in selectors/.
    """

    def __init__(self, session: Session):
        self.session = session
