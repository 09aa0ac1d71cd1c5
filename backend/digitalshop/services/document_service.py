# Overview: Atomic PREFIX-YYYY-#### document number allocation.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow
from .concurrency import run_with_retry


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


# document_type -> (prefix, pad, yearly)
DOCUMENT_FORMATS = {
    "SALE": ("SALE", 4, True),
    "INVOICE": ("INV", 4, True),
    "RECEIPT": ("RCP", 4, True),
    "REFUND": ("REF", 4, True),
    "GOODS_RECEIPT": ("GR", 4, True),
    "PURCHASE_ORDER": ("PO", 4, True),
    "HOLD": ("HOLD", 4, True),
    "EXPENSE": ("EXP", 4, True),
    "ADJUSTMENT": ("ADJ", 4, True),
    "MOVEMENT": ("MOV", 6, True),
    "PRODUCT": ("PRD", 5, False),
}


def _current_number(document_type: str, year: int) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, year=year)
        .scalar()
    )


def next_document_number(
    document_type: str,
    prefix: str | None = None,
    *,
    pad: int | None = None,
    year: bool | None = None,
) -> str:
    """
    Atomically allocate the next number for a document type.

    The counter row for (document_type, year) is bumped with a single
    UPDATE ... SET next_number = next_number + 1, so two writers can never
    read the same value. The first allocation of a year inserts the row;
    losing that insert race falls back to the UPDATE.

    Returns "PREFIX-YYYY-0001" style numbers, or "PREFIX-00001" when the
    sequence is not yearly.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    default_prefix, default_pad, default_yearly = DOCUMENT_FORMATS.get(
        document_type, (document_type, 4, True)
    )
    prefix = prefix or default_prefix
    pad = pad if pad is not None else default_pad
    yearly = default_yearly if year is None else year

    def _allocate() -> str:
        seq_year = utcnow().year if yearly else 0
        stmt = (
            update(DocumentSequence)
            .where(
                DocumentSequence.document_type == document_type,
                DocumentSequence.year == seq_year,
            )
            .values(next_number=DocumentSequence.next_number + 1, updated_at=utcnow())
        )

        result = db.session.execute(stmt)
        if result.rowcount:
            allocated = _current_number(document_type, seq_year) - 1
        else:
            try:
                with db.session.begin_nested():
                    db.session.add(
                        DocumentSequence(document_type=document_type, year=seq_year, next_number=2)
                    )
                allocated = 1
            except IntegrityError:
                result = db.session.execute(stmt)
                if not result.rowcount:
                    raise DocumentSequenceError(
                        f"Could not allocate {document_type} number"
                    )
                allocated = _current_number(document_type, seq_year) - 1

        if yearly:
            return f"{prefix}-{seq_year}-{allocated:0{pad}d}"
        return f"{prefix}-{allocated:0{pad}d}"

    return run_with_retry(_allocate)
