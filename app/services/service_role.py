"""
Trusted service capability.

Operations that read or write rows on behalf of any account (consuming a
nonce, binding it to an account) take a ``ServiceRole`` instead of a bare
session. Holding one only proves the caller authenticated as a service;
per-account ownership checks are still done explicitly by the operation.
"""

import logging

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class ServiceRole:
    """Database access granted to an authenticated service caller."""

    def __init__(self, db: Session, caller: str = "service"):
        self.db = db
        self.caller = caller

    def __repr__(self):
        return f"<ServiceRole caller={self.caller}>"
