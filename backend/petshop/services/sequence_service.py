# Overview: Monotonic document numbers for sales and purchases.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence

SALE_SEQUENCE = "SALE"
PURCHASE_SEQUENCE = "PURCHASE"


def ensure_sequence(document_type: str) -> None:
    """
    Create the counter row for `document_type` if it does not exist yet.

    Runs in its own short transaction, before the unit of work that will
    allocate from it. Losing the insert race to another request is fine.
    """
    exists = db.session.query(DocumentSequence.id).filter_by(document_type=document_type).first()
    if exists:
        db.session.commit()
        return
    db.session.add(DocumentSequence(document_type=document_type, next_number=1))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()


def next_number(document_type: str) -> int:
    """
    Allocate the next number for `document_type` inside the caller's transaction.

    Single atomic UPDATE ... SET next_number = next_number + 1; the number is
    only consumed if the caller commits.
    """
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        seq = DocumentSequence(document_type=document_type, next_number=2)
        db.session.add(seq)
        db.session.flush()
        return 1

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def format_sale_number(number: int) -> str:
    return f"{number:06d}"
