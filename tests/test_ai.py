import json
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from expense_ai.database import Category
from expense_ai.errors import ExternalServiceError
from expense_ai.services.ai import ExpenseExtractor, match_category, parse_model_json


class FakeOpenAI:
    """Just enough of the OpenAI client surface for ExpenseExtractor."""

    def __init__(self, output_text="", transcript="", error=None):
        self.requests = []
        self._output_text = output_text
        self._transcript = transcript
        self._error = error
        self.responses = SimpleNamespace(create=self._create_response)
        self.audio = SimpleNamespace(transcriptions=SimpleNamespace(create=self._transcribe))

    def _create_response(self, **kwargs):
        self.requests.append(kwargs)
        if self._error:
            raise self._error
        return SimpleNamespace(output_text=self._output_text)

    def _transcribe(self, **kwargs):
        self.requests.append(kwargs)
        if self._error:
            raise self._error
        return self._transcript


CATEGORIES = [
    Category(id=1, name="Food & Drink", icon="restaurant-outline", color="#FF6B6B"),
    Category(id=2, name="Transport", icon="car-outline", color="#4ECDC4"),
    Category(id=8, name="Other", icon="card-outline", color="#F7DC6F"),
]


class TestParsing:
    def test_plain_json(self):
        assert parse_model_json('{"amount": 5}') == {"amount": 5}

    def test_fenced_json(self):
        assert parse_model_json('```json\n{"amount": 5}\n```') == {"amount": 5}

    def test_garbage_raises(self):
        with pytest.raises(ExternalServiceError):
            parse_model_json("I could not read the receipt")

    def test_empty_raises(self):
        with pytest.raises(ExternalServiceError):
            parse_model_json("")

    def test_category_matching(self):
        assert match_category("2", CATEGORIES) == 2
        assert match_category("transport", CATEGORIES) == 2
        assert match_category("food", CATEGORIES) == 1
        assert match_category("other", CATEGORIES) == 8
        assert match_category("999", CATEGORIES) == 8
        assert match_category(None, []) is None


class TestExpenseExtractor:
    def test_receipt_is_sanitized(self):
        reply = {
            "amount": "23.45",
            "description": "Corner Cafe",
            "category_id": "1",
            "item_breakdowns": [{"name": "Latte", "quantity": "2", "price": 4.5}, {"quantity": None}],
            "confidence": 3,
        }
        fake = FakeOpenAI(output_text=json.dumps(reply))
        result = ExpenseExtractor(client=fake).process_receipt_image("https://img.test/r.jpg", CATEGORIES)

        assert result.amount == pytest.approx(23.45)
        assert result.category_id == 1
        assert result.confidence == 1.0
        assert result.item_breakdowns[0].quantity == 2
        assert result.item_breakdowns[1].name == "Item"
        content = fake.requests[0]["input"][0]["content"]
        assert content[1] == {"type": "input_image", "image_url": "https://img.test/r.jpg", "detail": "high"}
        assert '"1": "Food & Drink"' in content[0]["text"]

    def test_receipt_defaults(self):
        fake = FakeOpenAI(output_text="{}")
        result = ExpenseExtractor(client=fake).process_receipt_image("https://img.test/r.jpg", CATEGORIES)
        assert result.amount == 0
        assert result.description == "Receipt expense"
        assert result.category_id == 8
        assert result.confidence == 0.5
        assert result.item_breakdowns is None

    def test_text_keeps_original_as_notes(self):
        fake = FakeOpenAI(output_text=json.dumps({"amount": 12, "category_id": "transport"}))
        result = ExpenseExtractor(client=fake).process_expense_text("Taxi home for 12 dollars", CATEGORIES)
        assert result.description == "Voice expense"
        assert result.notes == "Taxi home for 12 dollars"
        assert result.category_id == 2

    def test_api_failure_becomes_external_service_error(self):
        fake = FakeOpenAI(error=OpenAIError("down"))
        with pytest.raises(ExternalServiceError):
            ExpenseExtractor(client=fake).process_expense_text("coffee 3", CATEGORIES)

    def test_transcription(self):
        fake = FakeOpenAI(transcript="  lunch twelve dollars \n")
        text = ExpenseExtractor(client=fake).transcribe_audio(b"RIFF....", "memo.wav")
        assert text == "lunch twelve dollars"
        assert fake.requests[0]["file"] == ("memo.wav", b"RIFF....")
        assert fake.requests[0]["response_format"] == "text"

    def test_missing_api_key(self):
        extractor = ExpenseExtractor()
        extractor._api_key = None
        with pytest.raises(ExternalServiceError):
            extractor.process_expense_text("coffee 3", CATEGORIES)
