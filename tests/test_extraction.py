import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from api.services.extraction import LeadExtractor, LeadRecord
from lib.error_handler import AppError

TRANSCRIPT = "user: I need a fence repaired\nuser: My name is Alex, phone 916-555-0100"

def extractor_returning(content: str):
    client = MagicMock()
    client.complete = AsyncMock(return_value=content)
    return LeadExtractor(openai_client=client, model="gpt-test"), client


@pytest.mark.asyncio
async def test_extracts_fields():
    extractor, client = extractor_returning(json.dumps({
        "Client Name": "Alex",
        "Contact Phone": "916-555-0100",
        "Contact Email": "",
        "Location": "Elk Grove",
        "Task": "fence repair",
        "Description": "Two broken fence panels",
        "Conversation Summary": "Alex needs a fence repaired.",
        "Time": "2024-05-01T12:00:00Z"
    }))

    record = await extractor.extract(TRANSCRIPT, "u1")

    assert record.user_id == "u1"
    assert record.client_name == "Alex"
    assert record.contact_phone == "916-555-0100"
    assert record.task == "fence repair"
    assert record.date_time == "2024-05-01T12:00:00Z"
    assert record.follow_up is True
    assert record.job_scheduled is False
    assert record.job_done is False
    assert record.has_task

    kwargs = client.complete.await_args.kwargs
    assert TRANSCRIPT in kwargs['messages'][0]['content']
    assert kwargs['json_mode'] is True
    assert kwargs['temperature'] == 0


@pytest.mark.asyncio
async def test_code_fenced_json_is_accepted():
    extractor, _ = extractor_returning('```json\n{"Task": "gutter cleaning"}\n```')
    record = await extractor.extract(TRANSCRIPT, "u1")
    assert record.task == "gutter cleaning"


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["not json at all", "[1, 2, 3]", ""])
async def test_malformed_response_gives_blank_record(content):
    extractor, _ = extractor_returning(content)

    record = await extractor.extract(TRANSCRIPT, "u1")

    assert record is not None
    assert record.user_id == "u1"
    assert record.task == ""
    assert record.description == ""
    assert record.follow_up is False
    assert not record.has_task
    assert record.date_time


@pytest.mark.asyncio
async def test_api_error_returns_none():
    extractor, client = extractor_returning("{}")
    client.complete.side_effect = AppError("Completion failed: 500")

    assert await extractor.extract(TRANSCRIPT, "u1") is None


def test_from_extraction_coerces_values():
    record = LeadRecord.from_extraction({
        "Client Name": None,
        "Contact Phone": 9165550100,
        "Task": "  ",
        "Contact Email": "alex@example.com",
    }, "u1")

    assert record.client_name == ""
    assert record.contact_phone == "9165550100"
    assert record.task == ""
    assert record.follow_up is True
    assert not record.has_task


def test_to_row_has_every_column():
    row = LeadRecord(user_id="u1", task="fence repair").to_row()

    assert set(row) == {
        "user_id", "client_name", "contact_phone", "contact_email", "location",
        "task", "description", "conversation_summary", "date_time",
        "follow_up", "job_scheduled", "job_done",
    }
    assert row["task"] == "fence repair"
