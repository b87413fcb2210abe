"""测试服务层：回复渲染、支出落库与历史消息。"""

import tempfile
from pathlib import Path

import pytest

from ledger_core.agents.expense_agent import AgentConfig, ExpenseAgent
from ledger_core.agents.formatting import NOT_UNDERSTOOD_MESSAGE, SOMETHING_WENT_WRONG_MESSAGE
from ledger_core.api.service import ExpenseBotService
from ledger_core.domain.exceptions import NetworkError, SinkError, ValidationError
from ledger_core.domain.expense_schema import ExpenseAgentResponse
from ledger_core.domain.models import ChatChoice, ChatResult
from ledger_core.domain.table import TableEntity
from ledger_core.infrastructure.storage.entity_table import EntityTable
from ledger_core.infrastructure.storage.json_table import JsonTableClient


class FakeProvider:
    name = "fake"

    def __init__(self, payloads):
        self._payloads = list(payloads)
        self.requests = []

    def chat(self, req):
        self.requests.append(req)
        item = self._payloads.pop(0)
        if isinstance(item, Exception):
            raise item
        parsed = ExpenseAgentResponse.model_validate(item) if item is not None else None
        return ChatResult(provider="fake", model=req.model, choices=[ChatChoice(index=0, content="", parsed=parsed)])


class FakeNotion:
    def __init__(self):
        self.created = []

    def create(self, expense):
        self.created.append(expense)
        return "page-123"


def _service(root: Path, payloads, notion=None):
    provider = FakeProvider(payloads)
    agent = ExpenseAgent(provider_client=provider, config=AgentConfig(provider="fake", previous_message_limit=10))
    service = ExpenseBotService(
        agent=agent,
        messages=EntityTable(JsonTableClient("Bot", root=root)),
        expenses=EntityTable(JsonTableClient("Expenses", root=root)),
        notion=notion,
        timezone_name="Asia/Bangkok",
        split_sentence=True,
    )
    service.create_tables()
    return service, provider


def test_expense_is_recorded_and_confirmed():
    with tempfile.TemporaryDirectory() as d:
        notion = FakeNotion()
        service, _ = _service(
            Path(d),
            [{"agent": "ExpenseTracker", "memo": "coffee", "amount": 50, "category": "Food", "dateTimeUtc": "2024-01-01T03:00:00Z"}],
            notion=notion,
        )
        replies = service.handle_text("42", "กาแฟ 50 บาท")

        assert replies == ["บันทึกค่าใช้จ่าย: Note coffee, 50 บาท ประเภท: Food วันที่: January 01, 2024 10:00"]
        assert len(notion.created) == 1
        expenses = service._expenses.list_all(partition_key="42-202401")
        assert len(expenses) == 1
        assert expenses[0].row_key == "20240101-000001"
        assert expenses[0].properties["notion_page_id"] == "page-123"
        assert expenses[0].properties["amount"] == 50


def test_incomplete_expense_is_not_recorded():
    with tempfile.TemporaryDirectory() as d:
        service, _ = _service(Path(d), [{"agent": "ExpenseTracker", "memo": "coffee"}])
        assert service.handle_text("42", "coffee") == [NOT_UNDERSTOOD_MESSAGE]
        assert service._expenses.count() == 0


def test_small_talk_is_split_in_natural_mode():
    with tempfile.TemporaryDirectory() as d:
        service, _ = _service(
            Path(d),
            [{"agent": "Default", "message": "สวัสดีค่ะ~ กินข้าวหรือยัง~"}, {"agent": "Default", "message": "a~b"}],
        )
        assert service.handle_text("42", "hi") == ["สวัสดีค่ะ", "กินข้าวหรือยัง"]
        assert service.handle_text("42", "hi", chat_mode="default") == ["a~b"]


def test_model_failure_returns_generic_reply():
    with tempfile.TemporaryDirectory() as d:
        service, _ = _service(Path(d), [NetworkError(code="TIMEOUT", message="timed out")])
        assert service.handle_text("42", "coffee 50") == [SOMETHING_WENT_WRONG_MESSAGE]


def test_previous_messages_are_recent_and_chronological():
    with tempfile.TemporaryDirectory() as d:
        service, provider = _service(
            Path(d),
            [{"agent": "Default", "message": "one"}, {"agent": "Default", "message": "two"}, {"agent": "Default", "message": "three"}],
        )
        service.handle_text("42", "a", chat_mode="default")
        service.handle_text("42", "b", chat_mode="default")
        service.handle_text("42", "c", chat_mode="default")

        history = [m.content for m in provider.requests[-1].messages if m.role == "assistant"]
        assert history == ["one", "two"]


def test_import_expenses_upserts():
    with tempfile.TemporaryDirectory() as d:
        service, _ = _service(Path(d), [])
        rows = [
            TableEntity(partition_key=f"42-2023{m:02d}", row_key=f"2023{m:02d}01-{i:06d}", properties={"amount": i})
            for m in (1, 2)
            for i in range(150)
        ]
        service.import_expenses(rows)
        service.import_expenses(rows[:10])
        assert service._expenses.count() == 300
        assert service._expenses.count(partition_key="42-202302") == 150


COFFEE = {"agent": "ExpenseTracker", "memo": "coffee", "amount": 50, "category": "Food", "dateTimeUtc": "2024-01-01T03:00:00Z"}


class FailingNotion:
    def create(self, expense):
        raise SinkError(code="API_ERROR", message="bad request", http_status=400, sink="notion")


def test_sequence_skips_imported_rows():
    with tempfile.TemporaryDirectory() as d:
        notion = FakeNotion()
        service, _ = _service(Path(d), [COFFEE], notion=notion)
        service.import_expenses([TableEntity(partition_key="42-202401", row_key="20240101-000002", properties={"amount": 10})])

        service.handle_text("42", "กาแฟ 50 บาท")

        rows = {e.row_key: e.properties for e in service._expenses.list_all(partition_key="42-202401")}
        assert sorted(rows) == ["20240101-000002", "20240101-000003"]
        assert rows["20240101-000003"]["notion_page_id"] == "page-123"
        assert len(notion.created) == 1


def test_notion_runs_after_table_insert():
    with tempfile.TemporaryDirectory() as d:
        service, _ = _service(Path(d), [COFFEE], notion=FailingNotion())
        with pytest.raises(SinkError):
            service.handle_text("42", "กาแฟ 50 บาท")

        rows = service._expenses.list_all(partition_key="42-202401")
        assert [r.row_key for r in rows] == ["20240101-000001"]
        assert "notion_page_id" not in rows[0].properties


def test_expense_partition_uses_local_date():
    with tempfile.TemporaryDirectory() as d:
        late = dict(COFFEE, dateTimeUtc="2024-01-31T20:00:00Z")
        service, _ = _service(Path(d), [late])
        service.handle_text("42", "ข้าวเย็น")
        assert service._expenses.count(partition_key="42-202401") == 0
        assert [e.row_key for e in service._expenses.list_all(partition_key="42-202402")] == ["20240201-000001"]


def test_configuration_error_returns_generic_reply():
    with tempfile.TemporaryDirectory() as d:
        service, _ = _service(Path(d), [ValidationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")])
        assert service.handle_text("42", "coffee 50") == [SOMETHING_WENT_WRONG_MESSAGE]
