"""Reusable helpers for transactional outbox delivery.

Rows are written in the same transaction as the state change that caused them
and delivered afterwards, so a committed change is never left without its
follow-up work silently disappearing.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func, or_, select, update

from storeflight.common.metrics import outbox_oldest_pending_age_seconds, outbox_pending_total


PENDING = "PENDING"
PROCESSING = "PROCESSING"
SENT = "SENT"
FAILED = "FAILED"


def claim_outbox_batch(
    db,
    outbox_model,
    limit: int = 100,
    processing_timeout_seconds: int = 30,
    ids: list[str] | None = None,
) -> list[dict]:
    """Claim a batch of pending/stale rows for delivery.

    When `ids` is given only those rows are considered; this is how a request
    delivers exactly the rows it just committed.
    """

    table = outbox_model.__table__
    now = datetime.now(timezone.utc)
    stale_before = now - timedelta(seconds=processing_timeout_seconds)
    query = select(table.c.id).where(
        or_(
            table.c.status == PENDING,
            (table.c.status == PROCESSING) & (table.c.sent_at.is_not(None)) & (table.c.sent_at < stale_before),
        )
    )
    if ids is not None:
        if not ids:
            return []
        query = query.where(table.c.id.in_(ids))
    claim_ids = list(
        db.execute(query.order_by(table.c.created_at).limit(limit).with_for_update(skip_locked=True)).scalars()
    )
    if not claim_ids:
        return []

    db.execute(
        update(table)
        .where(table.c.id.in_(claim_ids))
        .values(status=PROCESSING, sent_at=now, attempts=table.c.attempts + 1)
    )
    rows = db.execute(
        select(table.c.id, table.c.event_type, table.c.aggregate_id, table.c.payload)
        .where(table.c.id.in_(claim_ids))
        .order_by(table.c.created_at)
    ).all()
    return [
        {"id": row.id, "event_type": row.event_type, "aggregate_id": row.aggregate_id, "payload": row.payload}
        for row in rows
    ]


def mark_outbox_sent(db, outbox_model, event_id: str) -> None:
    """Mark one claimed outbox row as delivered."""

    table = outbox_model.__table__
    db.execute(
        update(table)
        .where(table.c.id == event_id, table.c.status == PROCESSING)
        .values(status=SENT, sent_at=datetime.now(timezone.utc))
    )


def requeue_outbox_event(db, outbox_model, event_id: str, max_attempts: int) -> None:
    """Return a claimed row to `PENDING`, or park it as `FAILED` once attempts run out."""

    table = outbox_model.__table__
    db.execute(
        update(table)
        .where(table.c.id == event_id, table.c.status == PROCESSING)
        .values(
            status=case((table.c.attempts >= max_attempts, FAILED), else_=PENDING),
            sent_at=None,
        )
    )


def requeue_failed_events(db, outbox_model, aggregate_id: str | None = None) -> int:
    """Give `FAILED` rows a fresh set of attempts. Returns the number of rows touched."""

    table = outbox_model.__table__
    stmt = update(table).where(table.c.status == FAILED)
    if aggregate_id is not None:
        stmt = stmt.where(table.c.aggregate_id == aggregate_id)
    result = db.execute(stmt.values(status=PENDING, attempts=0, sent_at=None))
    return result.rowcount


def update_outbox_backlog_metrics(db, outbox_model, service_name: str) -> None:
    """Update gauges for pending outbox depth and oldest age."""

    table = outbox_model.__table__
    now = datetime.now(timezone.utc)
    pending_statuses = (PENDING, PROCESSING)
    pending_count = (
        db.execute(select(func.count()).select_from(table).where(table.c.status.in_(pending_statuses))).scalar_one()
    )
    oldest_pending = db.execute(
        select(func.min(table.c.created_at)).where(table.c.status.in_(pending_statuses))
    ).scalar_one()
    age_seconds = 0.0
    if oldest_pending is not None:
        if oldest_pending.tzinfo is None:
            oldest_pending = oldest_pending.replace(tzinfo=timezone.utc)
        age_seconds = max(0.0, (now - oldest_pending).total_seconds())
    outbox_pending_total.labels(service=service_name).set(float(pending_count))
    outbox_oldest_pending_age_seconds.labels(service=service_name).set(age_seconds)
