"""把 ChatAiResponse 渲染成发给用户的文本。"""

from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from ledger_core.domain.models import ChatAiResponse
from ledger_core.prompts import SENTENCE_END


NOT_UNDERSTOOD_MESSAGE = "ไม่เข้าใจข้อความที่ส่งมา"
SOMETHING_WENT_WRONG_MESSAGE = "ขออภัย เกิดข้อผิดพลาดบางอย่าง ลองใหม่อีกครั้ง"

DATE_FORMAT = "%B %d, %Y %H:%M"


def format_amount(amount: float) -> str:
    if isinstance(amount, float) and amount.is_integer():
        return str(int(amount))
    return str(amount)


def format_date(value: datetime, tz: str) -> str:
    return value.astimezone(ZoneInfo(tz)).strftime(DATE_FORMAT)


def format_expense_message(result: Optional[ChatAiResponse], tz: str = "Asia/Bangkok") -> str:
    """记账确认消息；非记账结果或缺字段的记账结果统一回复“看不懂”。"""

    if result is None or not result.is_complete_expense:
        return NOT_UNDERSTOOD_MESSAGE
    return (
        f"บันทึกค่าใช้จ่าย: Note {result.memo}, {format_amount(result.amount)} บาท "
        f"ประเภท: {result.category} วันที่: {format_date(result.date, tz)}"
    )


def split_sentences(text: str) -> List[str]:
    return [part.strip() for part in text.split(SENTENCE_END) if part.strip()]
