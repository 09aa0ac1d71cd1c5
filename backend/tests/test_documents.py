"""
Document numbering and the retry wrapper used by every numbered write.
"""

import pytest
from sqlalchemy.exc import OperationalError

from digitalshop.models import DocumentSequence
from digitalshop.services.concurrency import run_with_retry
from digitalshop.services.document_service import DocumentSequenceError, next_document_number
from digitalshop.time_utils import utcnow


class TestNextDocumentNumber:

    def test_yearly_sequence_is_gapless(self, db_session):
        year = utcnow().year
        numbers = [next_document_number("SALE") for _ in range(3)]
        assert numbers == [f"SALE-{year}-0001", f"SALE-{year}-0002", f"SALE-{year}-0003"]

        seq = db_session.query(DocumentSequence).filter_by(document_type="SALE", year=year).one()
        assert seq.next_number == 4

    def test_types_have_independent_counters(self, db_session):
        year = utcnow().year
        next_document_number("SALE")
        assert next_document_number("INVOICE") == f"INV-{year}-0001"
        assert next_document_number("RECEIPT") == f"RCP-{year}-0001"

    def test_movement_numbers_are_six_digits(self, db_session):
        assert next_document_number("MOVEMENT") == f"MOV-{utcnow().year}-000001"

    def test_product_codes_are_not_yearly(self, db_session):
        assert next_document_number("PRODUCT") == "PRD-00001"
        assert next_document_number("PRODUCT") == "PRD-00002"
        assert db_session.query(DocumentSequence).filter_by(document_type="PRODUCT").one().year == 0

    def test_unknown_type_uses_its_name_as_prefix(self, db_session):
        assert next_document_number("TRANSFER") == f"TRANSFER-{utcnow().year}-0001"

    def test_explicit_prefix_and_pad(self, db_session):
        assert next_document_number("QUOTE", "QT", pad=3, year=False) == "QT-001"

    def test_type_required(self, db_session):
        with pytest.raises(DocumentSequenceError):
            next_document_number("")


class TestRunWithRetry:

    def test_retries_lock_errors(self, db_session):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("UPDATE ...", {}, Exception("database is locked"))
            return "ok"

        assert run_with_retry(flaky, backoff_base=0) == "ok"
        assert len(calls) == 3

    def test_gives_up_after_attempts(self, db_session):
        def always_locked():
            raise OperationalError("UPDATE ...", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(always_locked, attempts=2, backoff_base=0)

    def test_business_errors_are_not_retried(self, db_session):
        calls = []

        def invalid():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            run_with_retry(invalid)
        assert len(calls) == 1

    def test_nested_scope_runs_inline(self, db_session):
        inner_calls = []

        def inner():
            inner_calls.append(1)
            return next_document_number("SALE")

        def outer():
            return [run_with_retry(inner), run_with_retry(inner)]

        year = utcnow().year
        assert run_with_retry(outer) == [f"SALE-{year}-0001", f"SALE-{year}-0002"]
        assert len(inner_calls) == 2
        assert not db_session.info.get("retry_scope")
