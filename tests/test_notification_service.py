import pytest

from services.notification_service import NotificationDispatcher, parse_recipients

FIELDS = [
    {"name": "name", "label": "Name", "type": "text"},
    {"name": "message", "label": "Message", "type": "textarea"},
    {"name": "cv", "label": "CV", "type": "file"},
]
FILES = [{"name": "cv.pdf", "path": "k-cv.pdf", "size": 1234, "type": "application/pdf", "fieldName": "cv"}]


async def _dispatch(dispatcher, recipients, data=None):
    return await dispatcher.dispatch(
        recipients,
        "Contact",
        FIELDS,
        data if data is not None else {"message": "Hello", "name": "Ada"},
        FILES,
        "sub-1",
    )


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("a@x.com, , b@x.com", ["a@x.com", "b@x.com"]),
        ("  a@x.com  ", ["a@x.com"]),
        (",,", []),
        ("", []),
        (None, []),
    ],
)
def test_parse_recipients(raw, expected):
    assert parse_recipients(raw) == expected


@pytest.mark.asyncio
async def test_one_send_per_recipient_and_blank_entries_skipped(email_service):
    outcome = await _dispatch(NotificationDispatcher(email_service), "a@x.com, , b@x.com")

    assert email_service.attempts == ["a@x.com", "b@x.com"]
    assert outcome["sent"] == ["a@x.com", "b@x.com"]


@pytest.mark.asyncio
async def test_failure_for_one_recipient_does_not_stop_the_next(email_service):
    email_service.raise_for.add("a@x.com")

    outcome = await _dispatch(NotificationDispatcher(email_service), "a@x.com, b@x.com")

    assert email_service.attempts == ["a@x.com", "b@x.com"]
    assert outcome == {"sent": ["b@x.com"], "failed": ["a@x.com"]}


@pytest.mark.asyncio
async def test_error_result_counts_as_failure(email_service):
    async def failing_send(**kwargs):
        email_service.attempts.append(kwargs["to_email"])
        return {"status": "error", "message": "quota exceeded"}

    email_service.send_email = failing_send

    outcome = await _dispatch(NotificationDispatcher(email_service), "a@x.com")

    assert outcome["failed"] == ["a@x.com"]


@pytest.mark.asyncio
async def test_no_recipients_is_a_no_op(email_service):
    outcome = await _dispatch(NotificationDispatcher(email_service), "")

    assert email_service.attempts == []
    assert outcome == {"sent": [], "failed": []}


@pytest.mark.asyncio
async def test_unusual_addresses_are_still_attempted(email_service):
    outcome = await _dispatch(
        NotificationDispatcher(email_service), "ops@localhost, team@intranet, not-an-address, b@x.com"
    )

    assert email_service.attempts == ["ops@localhost", "team@intranet", "not-an-address", "b@x.com"]
    assert outcome["sent"] == email_service.attempts


@pytest.mark.asyncio
async def test_provider_rejection_of_bad_address_is_a_failure(email_service):
    email_service.raise_for.add("not-an-address")

    outcome = await _dispatch(NotificationDispatcher(email_service), "not-an-address, b@x.com")

    assert email_service.attempts == ["not-an-address", "b@x.com"]
    assert outcome == {"sent": ["b@x.com"], "failed": ["not-an-address"]}


def test_render_lists_answers_in_field_order(email_service):
    message = NotificationDispatcher(email_service).render(
        "Contact", FIELDS, {"message": "Hello", "name": "Ada"}, FILES, "sub-1"
    )

    text = message["text"]
    assert message["subject"] == "New submission: Contact"
    assert text.index("Name: Ada") < text.index("Message: Hello")
    assert "cv.pdf (1234 bytes)" in text
    assert "Submission ID: sub-1" in text


def test_render_escapes_html_answers(email_service):
    message = NotificationDispatcher(email_service).render(
        "Contact", FIELDS, {"name": "<script>alert(1)</script>"}, [], "sub-2"
    )

    assert "<script>" not in message["html"]
    assert "&lt;script&gt;" in message["html"]
    assert "<script>alert(1)</script>" in message["text"]
