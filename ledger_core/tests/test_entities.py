from datetime import datetime, timezone

import pytest

from ledger_core.domain.entities import ExpenseEntity, MessageEntity
from ledger_core.domain.exceptions import ValidationError


def test_message_entity_keys():
    created = datetime(2021, 1, 1, tzinfo=timezone.utc)
    entity = MessageEntity(user_id=1234567890, text="Hello", created_at=created).value
    assert entity.partition_key == "2021-1234567890"
    assert entity.row_key == "20210101000000000000-user-000"
    assert entity.properties["message"] == "Hello"
    assert entity.properties["created_at"] == "2021-01-01T00:00:00.000Z"


def test_expense_entity_requires_init():
    calls = []

    def sequence(partition_key, day_prefix):
        calls.append((partition_key, day_prefix))
        return 7

    pending = ExpenseEntity(
        user_id="42",
        memo="coffee",
        amount=50,
        category="Food",
        spent_at=datetime(2024, 1, 1, 3, tzinfo=timezone.utc),
        sequence=sequence,
    )
    with pytest.raises(ValidationError):
        pending.value

    entity = pending.init()
    assert entity.key == ("42-202401", "20240101-000007")
    assert pending.init() is entity
    assert calls == [("42-202401", "20240101")]


def test_expense_keys_follow_local_calendar():
    entity = ExpenseEntity(
        user_id="42",
        memo="dinner",
        amount=120,
        category="Food",
        spent_at=datetime(2024, 1, 31, 20, tzinfo=timezone.utc),
        sequence=lambda partition_key, day_prefix: 1,
        timezone_name="Asia/Bangkok",
    ).init()
    assert entity.key == ("42-202402", "20240201-000001")
    assert entity.properties["spent_at"] == "2024-01-31T20:00:00.000Z"
