"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write service in the kernel.  Concrete services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit.  The caller (a request handler, ``session_scope()``,
    or a test harness) owns commit and rollback.  The exceptions to "never
    roll back" are a SAVEPOINT a service itself opened, which it may roll
    back to undo its own partial work, and a SQLite transaction that lost a
    write to a concurrent commit, which can only be rolled back.

Audit relevance:
    BaseService emits no log events itself; every concrete subclass that
    mutates state logs each operation under the ``inspection_kernel.``
    namespace.
"""

from abc import ABC

from sqlalchemy.orm import Session

from inspection_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel write services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Guarantees:
        - The service never calls ``session.commit()``.

    Non-goals:
        - Does NOT manage transaction lifecycle.
        - Does NOT provide query-only projections -- those belong in
          ``inspection_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
