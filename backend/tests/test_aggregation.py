from __future__ import annotations

from decimal import Decimal

from app.domain import MarketMetadata
from app.services.aggregation import (
    aggregate_votes,
    aggregate_winnings,
    count_votes,
    to_display_amount,
)
from conftest import ALICE, BOB, ONE_TOKEN, make_claim, make_purchase
from ingestion.normalize import normalize_claims, normalize_purchases

MARKETS = {
    1: MarketMetadata(market_id=1, question="Will it rain tomorrow?", option_a="Yes", option_b="No"),
    2: MarketMetadata(market_id=2, question="Who wins the final?", option_a="Red", option_b="Blue"),
}


def test_display_amount_uses_token_decimals():
    assert to_display_amount(5 * ONE_TOKEN, 18) == Decimal("5")
    assert float(to_display_amount(5 * ONE_TOKEN, 18)) == 5.0
    assert to_display_amount(1_500_000, 6) == Decimal("1.5")
    assert to_display_amount(0, 18) == Decimal(0)


def test_winnings_are_summed_per_address():
    claims = normalize_claims(
        [
            make_claim(ALICE, 2 * ONE_TOKEN, block=10),
            make_claim(ALICE.upper().replace("0X", "0x"), 3 * ONE_TOKEN, block=11),
            make_claim(BOB, ONE_TOKEN // 2, block=12),
        ]
    )

    winnings = aggregate_winnings(claims, 18)

    assert winnings[ALICE].cumulative_amount == Decimal(5)
    assert winnings[ALICE].claim_count == 2
    assert winnings[BOB].cumulative_amount == Decimal("0.5")


def test_winnings_are_idempotent_over_duplicate_events():
    events = [make_claim(ALICE, ONE_TOKEN, block=10), make_claim(BOB, 2 * ONE_TOKEN, block=11)]

    once = aggregate_winnings(normalize_claims(events), 18)
    twice = aggregate_winnings(normalize_claims(events + events), 18)

    assert {address: entry.cumulative_amount for address, entry in once.items()} == {
        address: entry.cumulative_amount for address, entry in twice.items()
    }
    assert twice[ALICE].claim_count == 1


def test_votes_join_market_metadata_in_chronological_order():
    purchases = normalize_purchases(
        [
            make_purchase(ALICE, 2 * ONE_TOKEN, market_id=2, is_option_a=False, block=20),
            make_purchase(ALICE, ONE_TOKEN, market_id=1, is_option_a=True, block=10),
        ]
    )

    votes = aggregate_votes(purchases, MARKETS, 18)

    assert [(vote.market_name, vote.option, vote.amount) for vote in votes] == [
        ("Will it rain tomorrow?", "Yes", Decimal(1)),
        ("Who wins the final?", "Blue", Decimal(2)),
    ]


def test_votes_without_metadata_are_dropped():
    purchases = normalize_purchases(
        [
            make_purchase(ALICE, ONE_TOKEN, market_id=1, block=10),
            make_purchase(ALICE, ONE_TOKEN, market_id=99, block=11),
        ]
    )

    assert [vote.market_id for vote in aggregate_votes(purchases, MARKETS, 18)] == [1]


def test_duplicate_purchases_count_once():
    event = make_purchase(ALICE, ONE_TOKEN, market_id=1, block=10)

    votes = aggregate_votes(normalize_purchases([event, event]), MARKETS, 18)

    assert len(votes) == 1


def test_votes_carry_block_timestamps_when_known():
    purchases = normalize_purchases(
        [
            make_purchase(ALICE, ONE_TOKEN, market_id=1, block=10),
            make_purchase(ALICE, ONE_TOKEN, market_id=2, block=11),
        ]
    )

    votes = aggregate_votes(purchases, MARKETS, 18, {10: 1_700_000_020})

    assert [vote.timestamp for vote in votes] == [1_700_000_020, None]


def test_vote_counts_per_buyer_ignore_duplicates():
    repeated = make_purchase(ALICE, ONE_TOKEN, market_id=1, block=10)
    purchases = normalize_purchases(
        [
            repeated,
            repeated,
            make_purchase(ALICE, ONE_TOKEN, market_id=2, block=11),
            make_purchase(BOB, ONE_TOKEN, market_id=1, block=12),
        ]
    )

    assert count_votes(purchases) == {ALICE: 2, BOB: 1}
