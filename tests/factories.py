"""Test doubles and record builders shared across test modules."""

from datetime import date, datetime

from src.models import Category, TransactionRecord


def make_record(
    name: str,
    amount: float,
    category: Category = Category.FOOD,
    day: date = date(2024, 11, 3),
    record_id: str = None,
) -> TransactionRecord:
    """Build a record without touching storage."""
    stamp = datetime(day.year, day.month, day.day, 12, 0)
    return TransactionRecord(
        id=record_id or f"{name}-{day.isoformat()}-{amount}",
        user_id="user_alice",
        name=name,
        amount=amount,
        category=category,
        date=stamp,
        created_at=stamp,
        updated_at=stamp,
    )


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.text)
