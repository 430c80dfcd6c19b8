from __future__ import annotations

import pytest

from app.domain import Identity
from app.services.identity_service import IdentityResolver, display_name, short_address
from conftest import ALICE, BOB, CAROL, StubIdentityLookup
from ingestion.errors import ConfigurationError


def _identity(address: str, name: str, fid: str) -> Identity:
    return Identity(address=address, display_name=name, numeric_id=fid, avatar_url=None)


def test_unresolved_address_falls_back_to_short_form():
    address = "0xabcd" + "0" * 32 + "ef01"

    assert short_address(address) == "0xabcd...ef01"
    assert display_name(address, None) == "0xabcd...ef01"
    assert display_name(address, _identity(address, "alice", "1")) == "alice"


def test_resolves_and_caches_hits(session_factory, executor):
    lookup = StubIdentityLookup({ALICE: _identity(ALICE, "alice", "11")})
    resolver = IdentityResolver(session_factory, lookup, executor, batch_size=25)

    first = resolver.resolve([ALICE.upper().replace("0X", "0x"), BOB])
    assert first[ALICE].display_name == "alice"
    assert first[BOB] is None
    assert lookup.calls == [[ALICE, BOB]]

    second = resolver.resolve([ALICE, BOB])
    assert second[ALICE].numeric_id == "11"
    # misses are looked up again, hits come from the cache
    assert lookup.calls[-1] == [BOB]


def test_negative_results_are_not_persisted(session_factory, executor):
    lookup = StubIdentityLookup()
    resolver = IdentityResolver(session_factory, lookup, executor)

    assert resolver.resolve([CAROL]) == {CAROL: None}

    lookup.users[CAROL] = _identity(CAROL, "carol", "33")
    assert resolver.resolve([CAROL])[CAROL].display_name == "carol"


def test_addresses_are_looked_up_in_batches(session_factory, executor):
    addresses = [f"0x{index:040x}" for index in range(60)]
    lookup = StubIdentityLookup()
    resolver = IdentityResolver(session_factory, lookup, executor, batch_size=25)

    resolver.resolve(addresses)

    assert [len(batch) for batch in lookup.calls] == [25, 25, 10]


def test_failed_batch_leaves_addresses_unresolved(session_factory, executor, sleeps):
    lookup = StubIdentityLookup({ALICE: _identity(ALICE, "alice", "11")})
    lookup.error = ConnectionError("identity service down")
    resolver = IdentityResolver(session_factory, lookup, executor)

    result = resolver.resolve([ALICE, BOB])

    assert result == {ALICE: None, BOB: None}
    assert len(lookup.calls) == 3
    assert sleeps == [1.0, 2.0]


def test_missing_credentials_propagate(session_factory, executor):
    lookup = StubIdentityLookup()
    lookup.error = ConfigurationError("NEYNAR_API_KEY is not configured")
    resolver = IdentityResolver(session_factory, lookup, executor)

    with pytest.raises(ConfigurationError):
        resolver.resolve([ALICE])
    assert len(lookup.calls) == 1


def test_empty_input_skips_lookup(session_factory, executor):
    lookup = StubIdentityLookup()

    assert IdentityResolver(session_factory, lookup, executor).resolve([]) == {}
    assert lookup.calls == []
