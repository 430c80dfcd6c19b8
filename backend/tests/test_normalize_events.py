from __future__ import annotations

import pytest

from app.domain import RawEvent
from conftest import ALICE, ONE_TOKEN, make_claim, make_purchase
from ingestion.errors import MalformedEventError
from ingestion.normalize import (
    normalize_address,
    normalize_claim,
    normalize_claims,
    normalize_purchase,
    normalize_purchases,
)


def test_normalize_purchase_parses_decoded_args():
    event = make_purchase("0x" + "A1" * 20, 5 * ONE_TOKEN, market_id=7, block=1234, log_index=2)

    purchase = normalize_purchase(event)

    assert purchase.market_id == 7
    assert purchase.buyer == ALICE
    assert purchase.is_option_a is True
    assert purchase.amount == 5 * ONE_TOKEN
    assert (purchase.block_number, purchase.log_index) == (1234, 2)


def test_normalize_claim_accepts_hex_and_native_ints():
    event = RawEvent(
        event_type="Claimed",
        block_number=10,
        transaction_hash="0xABC",
        log_index=0,
        args={"marketId": 3, "user": ALICE, "amount": hex(ONE_TOKEN)},
    )

    claim = normalize_claim(event)

    assert claim.market_id == 3
    assert claim.amount == ONE_TOKEN
    assert claim.transaction_hash == "0xabc"


@pytest.mark.parametrize(
    "args",
    [
        {"marketId": "1", "user": ALICE},
        {"marketId": "1", "user": "not-an-address", "amount": "1"},
        {"marketId": "1", "user": ALICE, "amount": "-5"},
        {"marketId": True, "user": ALICE, "amount": "1"},
        {"marketId": "one", "user": ALICE, "amount": "1"},
    ],
)
def test_normalize_claim_rejects_malformed_args(args):
    event = RawEvent(event_type="Claimed", block_number=1, transaction_hash="0x1", log_index=0, args=args)

    with pytest.raises(MalformedEventError):
        normalize_claim(event)


def test_normalize_rejects_wrong_event_type():
    with pytest.raises(MalformedEventError):
        normalize_purchase(make_claim(ALICE, 1, block=1))


def test_bulk_normalizers_discard_malformed_events():
    good = make_purchase(ALICE, 1, market_id=1, block=1)
    bad = RawEvent(
        event_type="SharesPurchased",
        block_number=2,
        transaction_hash="0x2",
        log_index=0,
        args={"marketId": "1", "buyer": ALICE, "isOptionA": "maybe", "amount": "1"},
    )

    assert [purchase.block_number for purchase in normalize_purchases([bad, good])] == [1]
    assert normalize_claims([good]) == []


def test_normalize_address_lowercases_and_validates():
    assert normalize_address("0x" + "AB" * 20) == "0x" + "ab" * 20
    with pytest.raises(ValueError):
        normalize_address("0x1234")
    with pytest.raises(ValueError):
        normalize_address("0x" + "zz" * 20)
