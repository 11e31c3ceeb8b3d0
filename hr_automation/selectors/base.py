"""
Module: hr_automation.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Automation > Selectors.  May import from models and
    the pure domain types.  Selectors NEVER create, modify or delete data.

Invariants enforced:
    - Read-only access: selectors accept a Session from the caller and never
      call add/delete/commit/flush on it.
    - Selectors return frozen dataclasses, ids or counts, never ORM rows.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Non-goals:
        - BaseSelector does NOT define any query methods; subclasses
          implement the queue and employee queries.
    """

    def __init__(self, session: Session):
        self.session = session
