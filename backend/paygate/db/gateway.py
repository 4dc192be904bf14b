"""Persistence gateway for users, payments and subscriptions

Every write here is keyed by a natural key (email, payment reference,
(user_id, plan)) and is safe to repeat: two concurrent deliveries of the
same webhook converge on one row instead of racing into a duplicate or a
unique-constraint failure. PostgreSQL and SQLite get a single
INSERT .. ON CONFLICT statement; other dialects use a savepointed insert
that falls back to an update when another writer won the race.

Functions commit their own work and raise SQLAlchemyError on failure.
Callers decide whether a failure is fatal.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paygate.models.payment import Payment
from paygate.models.subscription import Subscription
from paygate.models.user import User

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _dialect_insert(db: Session):
    return _UPSERT_DIALECTS.get(db.get_bind().dialect.name)


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as some drivers return them) as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================================================
# USERS
# ============================================================================

def find_user_by_email(email: str, db: Session) -> Optional[User]:
    """Get user by email (exact match, case-sensitive as stored)"""
    return db.query(User).filter(User.email == email).first()


def create_user(email: str, db: Session) -> User:
    """Create a user; an existing row for the email is returned instead"""
    insert = _dialect_insert(db)
    if insert is not None:
        stmt = insert(User.__table__).values(
            email=email,
            created_at=datetime.now(timezone.utc)
        ).on_conflict_do_nothing(index_elements=["email"])
        db.execute(stmt)
        db.commit()
    else:
        try:
            with db.begin_nested():
                db.add(User(email=email))
            db.commit()
        except IntegrityError:
            # Lost the race to a concurrent delivery for the same email
            db.rollback()
    return find_user_by_email(email, db)


def get_or_create_user(email: str, db: Session) -> Optional[User]:
    """Fetch the user for an email, creating it on first sighting"""
    if not email:
        return None
    user = find_user_by_email(email, db)
    if user:
        return user
    return create_user(email, db)


# ============================================================================
# PAYMENTS
# ============================================================================

def upsert_payment(reference: str, fields: Dict[str, Any], db: Session) -> Payment:
    """Create or update the payment identified by `reference`.

    `fields` holds the column values for a fresh row. On conflict the
    existing row gets the new status, currency and raw payloads; the amount
    is only overwritten when a value is supplied, and the user link is only
    filled in when it was still empty.
    """
    now = datetime.now(timezone.utc)
    values = {"provider": "paystack", **fields, "reference": reference, "created_at": now, "updated_at": now}
    insert = _dialect_insert(db)

    if insert is not None:
        stmt = insert(Payment.__table__).values(**values)
        table = Payment.__table__.c
        set_ = {
            "status": stmt.excluded.status,
            "currency": stmt.excluded.currency,
            "amount_minor": func.coalesce(stmt.excluded.amount_minor, table.amount_minor),
            "user_id": func.coalesce(table.user_id, stmt.excluded.user_id),
            "updated_at": stmt.excluded.updated_at,
        }
        for column in ("raw_init_response", "raw_webhook_event"):
            if values.get(column) is not None:
                set_[column] = stmt.excluded[column]
        db.execute(stmt.on_conflict_do_update(index_elements=["reference"], set_=set_))
        db.commit()
    else:
        try:
            with db.begin_nested():
                db.add(Payment(**values))
            db.commit()
        except IntegrityError:
            db.rollback()
            payment = db.query(Payment).filter(Payment.reference == reference).with_for_update().one()
            payment.status = values["status"]
            payment.currency = values.get("currency", payment.currency)
            if values.get("amount_minor") is not None:
                payment.amount_minor = values["amount_minor"]
            if payment.user_id is None:
                payment.user_id = values.get("user_id")
            for column in ("raw_init_response", "raw_webhook_event"):
                if values.get(column) is not None:
                    setattr(payment, column, values[column])
            db.commit()

    return db.query(Payment).filter(Payment.reference == reference).one()


def create_payment_if_absent(reference: str, fields: Dict[str, Any], db: Session) -> None:
    """Insert a payment row unless `reference` already exists.

    Used when a transaction is initialized: a webhook that raced ahead of
    the initialize response must not be reset back to 'initialized'.
    """
    now = datetime.now(timezone.utc)
    values = {"provider": "paystack", **fields, "reference": reference, "created_at": now, "updated_at": now}
    insert = _dialect_insert(db)
    if insert is not None:
        db.execute(insert(Payment.__table__).values(**values).on_conflict_do_nothing(index_elements=["reference"]))
        db.commit()
        return
    try:
        with db.begin_nested():
            db.add(Payment(**values))
        db.commit()
    except IntegrityError:
        db.rollback()


def update_payments_by_reference(reference: str, fields: Dict[str, Any], db: Session) -> int:
    """Update payments matching `reference`; returns the number of rows touched (0 is fine)"""
    stmt = (
        update(Payment)
        .where(Payment.reference == reference)
        .values(**fields, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount


# ============================================================================
# SUBSCRIPTIONS
# ============================================================================

def upsert_subscription(user_id: int, plan: str, fields: Dict[str, Any], db: Session) -> Subscription:
    """Create or reactivate the subscription identified by (user_id, plan).

    `last_paid_at` never moves backwards: when the stored timestamp is newer
    than the one supplied (a slower concurrent delivery), it is kept.
    """
    now = datetime.now(timezone.utc)
    values = {"provider": "paystack", **fields, "user_id": user_id, "plan": plan, "created_at": now, "updated_at": now}
    insert = _dialect_insert(db)

    if insert is not None:
        stmt = insert(Subscription.__table__).values(**values)
        table = Subscription.__table__.c
        set_ = {
            "status": stmt.excluded.status,
            "provider_plan_code": func.coalesce(stmt.excluded.provider_plan_code, table.provider_plan_code),
            "updated_at": stmt.excluded.updated_at,
        }
        if values.get("last_paid_at") is not None:
            set_["last_paid_at"] = case(
                (table.last_paid_at.is_(None), stmt.excluded.last_paid_at),
                (table.last_paid_at > stmt.excluded.last_paid_at, table.last_paid_at),
                else_=stmt.excluded.last_paid_at,
            )
        db.execute(stmt.on_conflict_do_update(index_elements=["user_id", "plan"], set_=set_))
        db.commit()
    else:
        try:
            with db.begin_nested():
                db.add(Subscription(**values))
            db.commit()
        except IntegrityError:
            db.rollback()
            subscription = db.query(Subscription).filter(
                Subscription.user_id == user_id,
                Subscription.plan == plan
            ).with_for_update().one()
            subscription.status = values["status"]
            if values.get("provider_plan_code"):
                subscription.provider_plan_code = values["provider_plan_code"]
            paid_at = values.get("last_paid_at")
            if paid_at is not None and (
                subscription.last_paid_at is None or _as_utc(subscription.last_paid_at) < _as_utc(paid_at)
            ):
                subscription.last_paid_at = paid_at
            db.commit()

    return db.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.plan == plan
    ).one()


def update_subscriptions_by_user_and_plan(user_id: int, plan: str, fields: Dict[str, Any], db: Session) -> int:
    """Update the (user_id, plan) subscription if it exists; returns rows touched"""
    stmt = (
        update(Subscription)
        .where(Subscription.user_id == user_id, Subscription.plan == plan)
        .values(**fields, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount


def list_user_subscriptions(user_id: int, db: Session):
    """All subscriptions for a user, most recently paid first"""
    stmt = (
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.last_paid_at.desc(), Subscription.id.desc())
    )
    return db.execute(stmt).scalars().all()
