# Overview: Atomic allocation of human-readable document numbers.

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence


def _bump(shop_id: int, document_type: str, period: str) -> int | None:
    """Increment the sequence row and return the number it handed out, or None if absent."""
    result = db.session.execute(
        update(DocumentSequence)
        .where(
            DocumentSequence.shop_id == shop_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        return None
    current = db.session.execute(
        select(DocumentSequence.next_number).where(
            DocumentSequence.shop_id == shop_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
    ).scalar_one()
    return current - 1


def next_document_number(
    *,
    shop_id: int,
    document_type: str,
    prefix: str,
    period: str,
    pad: int = 4,
) -> str:
    """
    Atomically allocate the next document number for a shop/type/period.

    The UPDATE takes the row lock; the first number of a period inserts the
    row instead, and a concurrent first insert falls back to the UPDATE.
    Runs in the caller's transaction.

    Example: prefix="TRF", period="20261017" -> "TRF-20261017-0001"
    """
    if not shop_id:
        raise ValidationError("shop_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    number = _bump(shop_id, document_type, period)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(
                    shop_id=shop_id,
                    document_type=document_type,
                    period=period,
                    next_number=2,
                ))
            number = 1
        except IntegrityError:
            number = _bump(shop_id, document_type, period)
            if number is None:
                raise

    return f"{prefix}-{period}-{number:0{pad}d}"
