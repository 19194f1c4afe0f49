# [TESTER] v1

from __future__ import annotations

import logging

import pytest

from crossoffer.core.types import Event
from crossoffer.errors import InvalidParameter, TemporalViolation
from crossoffer.integration.clock import LedgerClock
from crossoffer.integration.events import EventLog


def test_events_are_recorded_in_order_and_filterable() -> None:
    log = EventLog()
    log.emit(Event.OFFER_REGISTERED, offer_id=0)
    log.emit(Event.OFFER_REGISTERED, offer_id=1)
    record = log.emit(Event.OFFER_ACTIVATED, offer_id=0, taker_commitment="0x" + "0a" * 32)

    assert len(log) == 3
    assert record.event is Event.OFFER_ACTIVATED
    assert record.get("offer_id") == 0
    assert record.get("missing", "dflt") == "dflt"
    assert [e.get("offer_id") for e in log.events(Event.OFFER_REGISTERED)] == [0, 1]
    assert [e.event for e in log.events()] == [
        Event.OFFER_REGISTERED,
        Event.OFFER_REGISTERED,
        Event.OFFER_ACTIVATED,
    ]


def test_subscribers_see_events_until_unsubscribed() -> None:
    log = EventLog()
    seen = []
    unsubscribe = log.subscribe(seen.append)
    log.emit(Event.OFFER_DEACTIVATED, offer_id=4)
    unsubscribe()
    unsubscribe()
    log.emit(Event.OFFER_DEACTIVATED, offer_id=5)
    assert [e.get("offer_id") for e in seen] == [4]


def test_failing_subscriber_does_not_unrecord_event(caplog) -> None:
    log = EventLog()
    seen = []

    def broken(_event) -> None:
        raise RuntimeError("subscriber bug")

    log.subscribe(broken)
    log.subscribe(seen.append)
    with caplog.at_level(logging.ERROR, logger="crossoffer.integration.events"):
        log.emit(Event.BID_PLACED, auction="0x" + "ac" * 20, bidder="0x" + "b1" * 20, amount=5)
    assert len(log) == 1
    assert len(seen) == 1
    assert "subscriber failed" in caplog.text


def test_clock_only_moves_forward() -> None:
    clock = LedgerClock(start=10)
    assert clock.now() == 10
    assert clock.advance_by(5) == 15
    assert clock.advance_to(15) == 15
    assert clock.advance_to(40) == 40
    with pytest.raises(TemporalViolation):
        clock.advance_to(39)
    assert clock.now() == 40


@pytest.mark.parametrize("bad", [-1, "5", True, 1.5])
def test_clock_rejects_bad_input(bad) -> None:
    clock = LedgerClock()
    with pytest.raises(InvalidParameter):
        clock.advance_by(bad)
    with pytest.raises(InvalidParameter):
        LedgerClock(start=bad)
