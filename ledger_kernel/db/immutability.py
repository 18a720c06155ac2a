"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The inventory ledger and the payment trail are the audit record of the
business.  A stock count can only be explained if every change that led to
it is still there, unchanged.  Corrections are therefore new rows
(compensating ledger entries, corrective payment records), never edits.

SQLAlchemy fires events before UPDATE/DELETE statements reach the database.
The listeners below intercept them:

    session.flush()
         |
         v
    [before_flush]   --> obligation with payments being deleted? --> ObligationHasPaymentsError
         |
         v
    [before_update]  --> append-only row?  --> ImmutabilityViolationError
    [before_delete]  --> append-only row?  --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``session.execute(update(...))`` statements bypass mapper events; the
kernel never issues them against append-only tables.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable            | Why
--------------------|---------------------------|---------------------------------
LedgerEntry         | ALWAYS (from creation)    | Stock history must replay exactly
PaymentRecord       | ALWAYS (from creation)    | amount_paid reconciles against it
ReplacementRecord   | ALWAYS (from creation)    | Evidence of goods handed out
AuditLog            | ALWAYS (from creation)    | The audit trail itself
Obligation          | Delete, once paid         | Payments would be orphaned

===============================================================================
USAGE
===============================================================================

Listeners are registered by ``init_engine_from_url()``.  Registration is
idempotent.  To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event, func, select
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import ImmutabilityViolationError, ObligationHasPaymentsError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _append_only_models():
    from ledger_kernel.models.audit_log import AuditLog
    from ledger_kernel.models.ledger import LedgerEntry
    from ledger_kernel.models.obligation import PaymentRecord
    from ledger_kernel.models.replacement import ReplacementRecord

    return (LedgerEntry, PaymentRecord, ReplacementRecord, AuditLog)


def _block(target, operation: str) -> None:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    verb = "modified" if operation == "UPDATE" else "deleted"
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} rows are append-only and cannot be {verb}",
    )


def _check_append_only_update(mapper, connection, target):
    """Refuse any UPDATE of an append-only row."""
    _block(target, "UPDATE")


def _check_append_only_delete(mapper, connection, target):
    """Refuse any DELETE of an append-only row."""
    _block(target, "DELETE")


def _check_obligation_deletion_before_flush(session, flush_context, instances):
    """
    Refuse to delete an obligation that has payment records.

    Runs in SessionEvents.before_flush, before the flush plan is fixed;
    mapper-level before_delete fires too late to stop the cascade.
    """
    from ledger_kernel.models.obligation import Obligation, PaymentRecord

    for obj in list(session.deleted):
        if not isinstance(obj, Obligation):
            continue

        with session.no_autoflush:
            payment_count = session.execute(
                select(func.count(PaymentRecord.id)).where(
                    PaymentRecord.obligation_id == obj.id
                )
            ).scalar_one()

        if payment_count:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Obligation",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "reason": "obligation_has_payments",
                },
            )
            raise ObligationHasPaymentsError(str(obj.id), payment_count)


def _listen_once(target, event_name, listener_fn) -> None:
    if not event.contains(target, event_name, listener_fn):
        event.listen(target, event_name, listener_fn)


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once.
    """
    _listen_once(Session, "before_flush", _check_obligation_deletion_before_flush)

    for model in _append_only_models():
        _listen_once(model, "before_update", _check_append_only_update)
        _listen_once(model, "before_delete", _check_append_only_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately violate the rules.
    """
    _safe_remove_listener(Session, "before_flush", _check_obligation_deletion_before_flush)

    for model in _append_only_models():
        _safe_remove_listener(model, "before_update", _check_append_only_update)
        _safe_remove_listener(model, "before_delete", _check_append_only_delete)
