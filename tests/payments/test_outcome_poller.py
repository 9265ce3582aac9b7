import httpx
import pytest

from application.services.outcome_poller import OutcomePoller
from domain.payment.entity import IntentHandle, OutcomeStatus
from domain.payment.exceptions import CommunicationError
from tests.fakes import StubGateway


HANDLE = IntentHandle(intent_id="pi_1", terminal_id="T1", status="OPEN")


def _poller(gw, clock, **kwargs) -> OutcomePoller:
    kwargs.setdefault("timeout", 60.0)
    return OutcomePoller(gw, interval=1.0, clock=clock, sleep=clock.sleep, **kwargs)


@pytest.mark.asyncio
async def test_approved_after_three_polls(fake_clock):
    gw = StubGateway(statuses=["OPEN", "ON_TERMINAL", "FINISHED:approved"])
    progress = []
    outcome = await _poller(gw, fake_clock).poll_until_terminal(HANDLE, on_progress=progress.append)

    assert outcome.status == OutcomeStatus.APPROVED
    assert outcome.payment_id == "pay_1"
    assert [p.elapsed for p in progress] == [1.0, 2.0, 3.0]
    assert [p.raw_status for p in progress] == ["OPEN", "ON_TERMINAL", "FINISHED"]
    assert progress[-1].remaining == 57.0


@pytest.mark.asyncio
async def test_decline_carries_provider_reason(fake_clock):
    gw = StubGateway(statuses=["FINISHED:rejected"], status_detail="insufficient funds")
    outcome = await _poller(gw, fake_clock).poll_until_terminal(HANDLE)
    assert outcome.status == OutcomeStatus.REJECTED
    assert outcome.error_message == "insufficient funds"


@pytest.mark.asyncio
@pytest.mark.parametrize("raw,expected", [
    ("CANCELED", OutcomeStatus.CANCELLED),
    ("ABANDONED", OutcomeStatus.CANCELLED),
    ("FINISHED", OutcomeStatus.CANCELLED),
    ("ERROR", OutcomeStatus.REJECTED),
    ("EXPIRED", OutcomeStatus.EXPIRED),
])
async def test_final_states(fake_clock, raw, expected):
    outcome = await _poller(StubGateway(statuses=[raw]), fake_clock).poll_until_terminal(HANDLE)
    assert outcome.status == expected


@pytest.mark.asyncio
async def test_unknown_status_is_an_error_never_success(fake_clock):
    outcome = await _poller(StubGateway(statuses=["MYSTERY"]), fake_clock).poll_until_terminal(HANDLE)
    assert outcome.status == OutcomeStatus.ERROR
    assert outcome.raw_status == "MYSTERY"
    assert "MYSTERY" in outcome.error_message


@pytest.mark.asyncio
async def test_unknown_status_can_keep_polling(fake_clock):
    gw = StubGateway(statuses=["MYSTERY", "MYSTERY", "FINISHED:approved"])
    poller = _poller(gw, fake_clock, unknown_status_policy="continue")
    outcome = await poller.poll_until_terminal(HANDLE)
    assert outcome.status == OutcomeStatus.APPROVED
    assert len(gw.reads) == 3


@pytest.mark.asyncio
async def test_ceiling_reached_is_a_timeout(fake_clock):
    gw = StubGateway(statuses=["OPEN"])
    outcome = await _poller(gw, fake_clock).poll_until_terminal(HANDLE)

    assert outcome.status == OutcomeStatus.TIMEOUT
    assert outcome.timeout_seconds == 60.0
    assert len(gw.reads) == 60
    error = outcome.as_error()
    assert error.error_type == "TimeoutExceeded"
    assert "60s" in error.message


@pytest.mark.asyncio
async def test_abort_stops_queries(fake_clock):
    gw = StubGateway(statuses=["OPEN"])
    allowed = {"polls": 2}

    def should_continue():
        return len(gw.reads) < allowed["polls"]

    outcome = await _poller(gw, fake_clock).poll_until_terminal(HANDLE, should_continue=should_continue)
    assert outcome is None
    assert len(gw.reads) == 2


@pytest.mark.asyncio
async def test_result_of_in_flight_query_is_dropped_after_abort(fake_clock):
    gw = StubGateway(statuses=["FINISHED:approved"])
    state = {"open": True}
    original = gw.get_intent

    async def get_intent(handle):
        snapshot = await original(handle)
        state["open"] = False  # operator closed while the query was outstanding
        return snapshot

    gw.get_intent = get_intent
    progress = []
    outcome = await _poller(gw, fake_clock).poll_until_terminal(
        HANDLE, on_progress=progress.append, should_continue=lambda: state["open"],
    )
    assert outcome is None
    assert progress == []


@pytest.mark.asyncio
async def test_transport_error_surfaces_as_communication_error(fake_clock):
    gw = StubGateway(read_error=httpx.ReadTimeout("timed out"))
    with pytest.raises(CommunicationError):
        await _poller(gw, fake_clock).poll_until_terminal(HANDLE)


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        OutcomePoller(StubGateway(), interval=0)
