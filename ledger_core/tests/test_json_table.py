import tempfile
from pathlib import Path

import pytest

from ledger_core.domain.exceptions import EntityExistsError, StoreError, ValidationError
from ledger_core.domain.table import TableEntity, TransactionAction
from ledger_core.infrastructure.storage.json_table import JsonTableClient


def _create(pk, rk, **props):
    return TransactionAction(operation="create", entity=TableEntity(partition_key=pk, row_key=rk, properties=props))


def test_transaction_is_all_or_nothing():
    with tempfile.TemporaryDirectory() as d:
        client = JsonTableClient("Bot", root=Path(d))
        client.create_table()
        client.submit_transaction([_create("p", "2", v=2)])

        with pytest.raises(EntityExistsError):
            client.submit_transaction([_create("p", "1", v=1), _create("p", "2", v=99), _create("p", "3", v=3)])

        rows = list(client.list_entities(partition_key="p"))
        assert [(e.row_key, e.properties["v"]) for e in rows] == [("2", 2)]


def test_transaction_limits():
    with tempfile.TemporaryDirectory() as d:
        client = JsonTableClient("Bot", root=Path(d))
        client.create_table()
        with pytest.raises(ValidationError):
            client.submit_transaction([])
        with pytest.raises(ValidationError):
            client.submit_transaction([_create("p", str(i)) for i in range(101)])
        with pytest.raises(ValidationError):
            client.submit_transaction([_create("p", "1"), _create("q", "1")])
        with pytest.raises(ValidationError):
            client.submit_transaction([_create("p", "1"), _create("p", "1")])
        assert list(client.list_entities()) == []


def test_missing_table_raises():
    with tempfile.TemporaryDirectory() as d:
        client = JsonTableClient("Nope", root=Path(d))
        with pytest.raises(StoreError):
            client.create_entity(TableEntity(partition_key="p", row_key="r"))


def test_list_orders_by_keys_and_projects_select():
    with tempfile.TemporaryDirectory() as d:
        client = JsonTableClient("Bot", root=Path(d))
        client.create_table()
        client.submit_transaction([_create("b/2024", "2", memo="tea", amount=20), _create("b/2024", "1", memo="rice", amount=40)])
        client.create_entity(TableEntity(partition_key="a", row_key="9", properties={"memo": "bus", "amount": 15}))

        keys = [e.key for e in client.list_entities()]
        assert keys == [("a", "9"), ("b/2024", "1"), ("b/2024", "2")]

        selected = list(client.list_entities(partition_key="b/2024", select=["memo"]))
        assert [e.properties for e in selected] == [{"memo": "rice"}, {"memo": "tea"}]
