import httpx
import pytest

from conftest import FakeGateway
from mindmosaic.errors import (
    AuthenticationError,
    EnrichmentError,
    PersistenceError,
    ValidationError,
)
from mindmosaic.pipeline import JournalWritePipeline


@pytest.mark.asyncio
async def test_scenario_a_enriched_entry_is_stored(fake_store, signed_in_session):
    gateway = FakeGateway(reply={"aiResponse": "Glad to hear it!", "sentiment": "Happy", "success": True})
    pipeline = JournalWritePipeline(fake_store, gateway)

    result = await pipeline.submit_entry(signed_in_session, "Happy", "Had a great day")

    stored = fake_store.partitions["uid-amy"]
    assert len(stored) == 1
    assert stored[0].mood == "Happy"
    assert stored[0].sentiment == "Happy"
    assert stored[0].ai_response == "Glad to hear it!"
    assert result.entry.id == stored[0].id
    assert result.entry.timestamp is not None
    assert [e.id for e in signed_in_session.entries] == [stored[0].id]
    assert gateway.calls == [("Had a great day", "Happy", "uid-amy")]


@pytest.mark.asyncio
@pytest.mark.parametrize("mood,text", [("Sad", "  "), ("Sad", ""), ("Ecstatic", "fine"), (None, "fine"), ("Sad", None)])
async def test_invalid_input_touches_nothing(fake_store, signed_in_session, mood, text):
    gateway = FakeGateway()
    pipeline = JournalWritePipeline(fake_store, gateway)

    with pytest.raises(ValidationError):
        await pipeline.submit_entry(signed_in_session, mood, text)

    assert fake_store.calls == []
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_signed_out_session_is_rejected(fake_store, registry):
    session = registry.start()
    session.auth.publish(None)
    gateway = FakeGateway()
    pipeline = JournalWritePipeline(fake_store, gateway)

    with pytest.raises(AuthenticationError):
        await pipeline.submit_entry(session, "Happy", "hello")
    assert fake_store.calls == []
    assert gateway.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    httpx.ConnectError("network down"),
    EnrichmentError("quota exceeded"),
    ValueError("malformed"),
])
async def test_scenario_c_gateway_failure_still_saves(fake_store, signed_in_session, error):
    pipeline = JournalWritePipeline(fake_store, FakeGateway(error=error))

    result = await pipeline.submit_entry(signed_in_session, "Anxious", "worried about exams")

    stored = fake_store.partitions["uid-amy"]
    assert len(stored) == 1
    assert stored[0].sentiment == "Anxious"
    assert stored[0].ai_response is None
    assert result.refresh_error is None


@pytest.mark.asyncio
async def test_missing_sentiment_falls_back_to_mood(fake_store, signed_in_session):
    pipeline = JournalWritePipeline(fake_store, FakeGateway(reply={"aiResponse": "Hang in there.", "success": True}))

    result = await pipeline.submit_entry(signed_in_session, "Sad", "rough day")

    assert result.entry.sentiment == "Sad"
    assert result.entry.ai_response == "Hang in there."


@pytest.mark.asyncio
async def test_gateway_sentiment_wins_when_present(fake_store, signed_in_session):
    pipeline = JournalWritePipeline(fake_store, FakeGateway(reply={"aiResponse": "ok", "sentiment": "Neutral"}))

    result = await pipeline.submit_entry(signed_in_session, "Angry", "meh")

    assert result.entry.sentiment == "Neutral"


@pytest.mark.asyncio
async def test_scenario_d_write_failure_aborts_without_refresh(fake_store, signed_in_session):
    fake_store.fail_add = True
    pipeline = JournalWritePipeline(fake_store, FakeGateway())

    with pytest.raises(PersistenceError):
        await pipeline.submit_entry(signed_in_session, "Happy", "Had a great day")

    assert ("list", "uid-amy") not in fake_store.calls
    fake_store.fail_add = False
    assert fake_store.list_entries("uid-amy") == []


@pytest.mark.asyncio
async def test_refresh_failure_is_reported_but_write_stands(fake_store, signed_in_session):
    fake_store.fail_list = True
    pipeline = JournalWritePipeline(fake_store, FakeGateway())

    result = await pipeline.submit_entry(signed_in_session, "Neutral", "just a day")

    assert result.refresh_error
    assert len(fake_store.partitions["uid-amy"]) == 1
    assert result.entry.text == "just a day"


@pytest.mark.asyncio
async def test_not_idempotent(fake_store, signed_in_session):
    pipeline = JournalWritePipeline(fake_store, FakeGateway())

    first = await pipeline.submit_entry(signed_in_session, "Happy", "same words")
    second = await pipeline.submit_entry(signed_in_session, "Happy", "same words")

    assert first.entry.id != second.entry.id
    assert len(signed_in_session.entries) == 2
    # newest first
    assert signed_in_session.entries[0].id == second.entry.id


@pytest.mark.asyncio
async def test_entries_stay_in_the_callers_partition(fake_store, registry, signed_in_session):
    from mindmosaic.models import AuthenticatedUser

    other = registry.start()
    other.auth.publish(AuthenticatedUser(uid="uid-ben", email="ben@example.com"))
    other.router.accept_consent()
    pipeline = JournalWritePipeline(fake_store, FakeGateway())

    await pipeline.submit_entry(signed_in_session, "Happy", "amy's entry")
    result = await pipeline.submit_entry(other, "Sad", "ben's entry")

    assert [e.text for e in result.entries] == ["ben's entry"]
    assert [e.text for e in pipeline.load_entries(signed_in_session)] == ["amy's entry"]


@pytest.mark.asyncio
async def test_crisis_language_sets_safety_flag(fake_store, signed_in_session):
    pipeline = JournalWritePipeline(fake_store, FakeGateway())

    result = await pipeline.submit_entry(signed_in_session, "Sad", "Some days I feel like I want to die")

    assert result.safety_flag is True
    assert result.safety_keyword == "want to die"
    assert signed_in_session.router.crisis is False


class _IdentityChangingGateway(FakeGateway):
    """Publishes a new auth state on the session while the AI call is in flight."""

    def __init__(self, session, next_user):
        super().__init__()
        self.session = session
        self.next_user = next_user

    async def enrich(self, text, mood, caller):
        self.session.auth.publish(self.next_user)
        return await super().enrich(text, mood, caller)


@pytest.mark.asyncio
async def test_sign_out_during_enrichment_writes_nothing(fake_store, signed_in_session):
    gateway = _IdentityChangingGateway(signed_in_session, None)
    pipeline = JournalWritePipeline(fake_store, gateway)

    with pytest.raises(AuthenticationError):
        await pipeline.submit_entry(signed_in_session, "Happy", "hello")

    assert gateway.calls == [("hello", "Happy", "uid-amy")]
    assert fake_store.partitions == {}
    assert not any(op == "add" for op, _ in fake_store.calls)
    assert signed_in_session.entries == []


@pytest.mark.asyncio
async def test_other_user_signing_in_during_enrichment_writes_nothing(fake_store, signed_in_session):
    from mindmosaic.models import AuthenticatedUser

    fake_store.add_entry("uid-ben", "Sad", "ben's entry", "Sad")
    ben = AuthenticatedUser(uid="uid-ben", email="ben@example.com")
    pipeline = JournalWritePipeline(fake_store, _IdentityChangingGateway(signed_in_session, ben))

    with pytest.raises(AuthenticationError):
        await pipeline.submit_entry(signed_in_session, "Happy", "amy's entry")

    assert "uid-amy" not in fake_store.partitions
    assert [e.text for e in fake_store.partitions["uid-ben"]] == ["ben's entry"]
    assert signed_in_session.entries == []


@pytest.mark.asyncio
async def test_refresh_never_returns_another_users_entries(fake_store, signed_in_session):
    fake_store.add_entry("uid-ben", "Sad", "ben's entry", "Sad")
    pipeline = JournalWritePipeline(fake_store, FakeGateway())

    result = await pipeline.submit_entry(signed_in_session, "Happy", "amy's entry")

    assert [e.user_id for e in result.entries] == ["uid-amy"]
    assert ("list", "uid-ben") not in fake_store.calls
