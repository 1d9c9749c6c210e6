"""
Sequence counter tests: gap-free allocation inside the caller's transaction.
"""

import pytest

from tyrepos.models import SequenceCounter
from tyrepos.services import sequence_service
from tyrepos.services.sequence_service import SequenceError


class TestNextValue:
    def test_counts_from_one(self, db_session):
        values = [sequence_service.next_value("demo") for _ in range(3)]
        db_session.commit()
        assert values == [1, 2, 3]
        assert db_session.query(SequenceCounter).filter_by(name="demo").one().next_value == 4

    def test_counters_are_independent(self, db_session):
        sequence_service.next_value("a")
        sequence_service.next_value("a")
        assert sequence_service.next_value("b") == 1

    def test_rolled_back_value_is_not_consumed(self, db_session):
        assert sequence_service.next_value("demo") == 1
        db_session.commit()

        assert sequence_service.next_value("demo") == 2
        db_session.rollback()

        assert sequence_service.next_value("demo") == 2

    def test_name_required(self, db_session):
        with pytest.raises(SequenceError):
            sequence_service.next_value("")


class TestFormats:
    def test_formatted_identifiers(self, db_session):
        assert sequence_service.next_item_code() == "RT0001"
        assert sequence_service.next_item_code() == "RT0002"
        assert sequence_service.next_bill_number() == "INV-00001"
        assert sequence_service.next_log_id() == "LOG-000001"
        assert sequence_service.next_stock_edit_sequence() == 1
