import pytest

from ledger_core.domain.exceptions import SinkError, ValidationError
from ledger_core.domain.models import ChatAiResponse, parse_date_time
from ledger_core.infrastructure.notion.expense_database import NotionExpenseDatabase


class SettingsStub:
    notion_key = "secret_abc"
    notion_base_url = "https://api.notion.com/v1"
    notion_version = "2022-06-28"
    notion_database_id = "db-1"
    http_timeout = 20.0


EXPENSE = ChatAiResponse(
    agent="ExpenseTracker",
    memo="coffee",
    amount=50,
    category="Food",
    date_time_utc="2024-01-01T03:00:00Z",
    date=parse_date_time("2024-01-01T03:00:00Z"),
)


def _patch_client(monkeypatch, status_code, body, captured):
    class Resp:
        def __init__(self):
            self.status_code = status_code
            self.text = "bad request"

        def json(self):
            if isinstance(body, Exception):
                raise body
            return body

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **_):
            captured["url"] = url
            captured["payload"] = json
            captured["headers"] = headers
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)


def test_create_page(monkeypatch):
    captured = {}
    _patch_client(monkeypatch, 200, {"id": "page-1"}, captured)
    page_id = NotionExpenseDatabase(SettingsStub()).create(EXPENSE)

    assert page_id == "page-1"
    assert captured["url"] == "https://api.notion.com/v1/pages"
    assert captured["headers"]["Notion-Version"] == "2022-06-28"
    props = captured["payload"]["properties"]
    assert captured["payload"]["parent"] == {"database_id": "db-1"}
    assert props["Memo"]["title"][0]["text"]["content"] == "coffee"
    assert props["Category"]["rich_text"][0]["text"]["content"] == "Food"
    assert props["Amount"]["number"] == 50
    assert props["Date"]["date"]["start"].startswith("2024-01-01T03:00:00")


def test_api_error(monkeypatch):
    _patch_client(monkeypatch, 400, {}, {})
    with pytest.raises(SinkError) as exc_info:
        NotionExpenseDatabase(SettingsStub()).create(EXPENSE)
    assert exc_info.value.http_status == 400


def test_incomplete_expense_rejected():
    with pytest.raises(ValidationError):
        NotionExpenseDatabase(SettingsStub()).create(ChatAiResponse(agent="ExpenseTracker", memo="coffee"))


def test_non_json_body_is_sink_error(monkeypatch):
    _patch_client(monkeypatch, 200, ValueError("Expecting value: line 1 column 1"), {})
    with pytest.raises(SinkError) as exc_info:
        NotionExpenseDatabase(SettingsStub()).create(EXPENSE)
    assert exc_info.value.code == "MALFORMED_RESPONSE"
