from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Any

from loguru import logger
from web3 import Web3

from app.core.config import settings
from app.domain import MarketMetadata, RawEvent, TokenInfo
from app.models import EventType

from .retry import RetryExecutor

MARKET_ABI: list[dict[str, Any]] = [
    {
        "type": "event",
        "name": "SharesPurchased",
        "anonymous": False,
        "inputs": [
            {"name": "marketId", "type": "uint256", "indexed": True},
            {"name": "buyer", "type": "address", "indexed": True},
            {"name": "isOptionA", "type": "bool", "indexed": False},
            {"name": "amount", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "Claimed",
        "anonymous": False,
        "inputs": [
            {"name": "marketId", "type": "uint256", "indexed": True},
            {"name": "user", "type": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "function",
        "name": "bettingToken",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "function",
        "name": "getMarketInfoBatch",
        "stateMutability": "view",
        "inputs": [{"name": "_marketIds", "type": "uint256[]"}],
        "outputs": [
            {"name": "questions", "type": "string[]"},
            {"name": "optionAs", "type": "string[]"},
            {"name": "optionBs", "type": "string[]"},
            {"name": "endTimes", "type": "uint256[]"},
            {"name": "outcomes", "type": "uint8[]"},
            {"name": "totalOptionASharesArray", "type": "uint256[]"},
            {"name": "totalOptionBSharesArray", "type": "uint256[]"},
            {"name": "resolvedArray", "type": "bool[]"},
        ],
    },
]

TOKEN_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "symbol",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "type": "function",
        "name": "decimals",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
]

EVENT_SIGNATURES: dict[EventType, str] = {
    EventType.SHARES_PURCHASED: "SharesPurchased(uint256,address,bool,uint256)",
    EventType.CLAIMED: "Claimed(uint256,address,uint256)",
}


def address_topic(address: str) -> str:
    """Left-pad an address into a 32-byte indexed topic."""

    return "0x" + "0" * 24 + Web3.to_checksum_address(address)[2:].lower()


def _json_safe(value: Any) -> Any:
    # uint256 values overflow JSON number handling in several stores
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return value


class ChainClient:
    """Read-only access to the market contract and its betting token."""

    def __init__(
        self,
        *,
        rpc_url: str | None = None,
        contract_address: str | None = None,
        token_address: str | None = None,
        timeout: float | None = None,
        web3: Web3 | None = None,
    ) -> None:
        self.rpc_url = rpc_url or settings.rpc_url
        self.timeout = timeout or settings.rpc_timeout_seconds
        self.w3 = web3 or Web3(
            Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.timeout})
        )
        self.contract_address = Web3.to_checksum_address(
            contract_address or settings.market_contract_address
        )
        self.fallback_token_address = Web3.to_checksum_address(
            token_address or settings.token_address
        )
        self.contract = self.w3.eth.contract(address=self.contract_address, abi=MARKET_ABI)
        self._topics = {
            event_type: Web3.keccak(text=signature)
            for event_type, signature in EVENT_SIGNATURES.items()
        }
        self._token_info: TokenInfo | None = None
        self._token_lock = threading.Lock()
        self._block_timestamps: dict[int, int] = {}
        self._timestamps_lock = threading.Lock()

    def get_block_number(self) -> int:
        return int(self.w3.eth.block_number)

    def get_block_timestamp(self, block_number: int) -> int:
        """Unix timestamp of ``block_number``; blocks never change, so each is fetched once."""

        with self._timestamps_lock:
            cached = self._block_timestamps.get(block_number)
        if cached is not None:
            return cached
        timestamp = int(self.w3.eth.get_block(block_number)["timestamp"])
        with self._timestamps_lock:
            self._block_timestamps[block_number] = timestamp
        return timestamp

    def get_logs(
        self,
        event_type: EventType,
        from_block: int,
        to_block: int,
        *,
        indexed_address: str | None = None,
    ) -> list[RawEvent]:
        """Fetch and decode one event type within ``[from_block, to_block]``.

        ``indexed_address`` filters on the event's indexed address argument
        (buyer or user), which is always the second indexed topic.
        """

        topics: list[Any] = [self._topics[event_type]]
        if indexed_address:
            topics.extend([None, address_topic(indexed_address)])
        logs = self.w3.eth.get_logs(
            {
                "address": self.contract_address,
                "topics": topics,
                "fromBlock": from_block,
                "toBlock": to_block,
            }
        )
        decoder = getattr(self.contract.events, event_type.value)()
        events: list[RawEvent] = []
        for log in logs:
            try:
                decoded = decoder.process_log(log)
            except Exception as exc:  # noqa: BLE001 - one undecodable log must not sink the batch
                logger.warning(
                    "Discarding undecodable {} log tx={} index={}: {}",
                    event_type.value,
                    log.get("transactionHash"),
                    log.get("logIndex"),
                    exc,
                )
                continue
            events.append(
                RawEvent(
                    event_type=event_type.value,
                    block_number=int(decoded["blockNumber"]),
                    transaction_hash=Web3.to_hex(decoded["transactionHash"]).lower(),
                    log_index=int(decoded["logIndex"]),
                    args={key: _json_safe(value) for key, value in dict(decoded["args"]).items()},
                )
            )
        return events

    def token_info(self, executor: RetryExecutor) -> TokenInfo:
        """Return betting token metadata, fetched once per client."""

        with self._token_lock:
            if self._token_info is not None:
                return self._token_info

            try:
                token_address = executor.execute(
                    lambda: self.contract.functions.bettingToken().call(),
                    description="bettingToken()",
                )
                token_address = Web3.to_checksum_address(token_address)
            except Exception as exc:  # noqa: BLE001 - configured token is a valid fallback
                logger.warning(
                    "Falling back to configured token {}: {}", self.fallback_token_address, exc
                )
                token_address = self.fallback_token_address

            token = self.w3.eth.contract(address=token_address, abi=TOKEN_ABI)
            symbol = executor.execute(
                lambda: token.functions.symbol().call(), description="symbol()"
            )
            decimals = executor.execute(
                lambda: token.functions.decimals().call(), description="decimals()"
            )
            self._token_info = TokenInfo(
                address=token_address.lower(), symbol=str(symbol), decimals=int(decimals)
            )
            logger.info(
                "Token {} ({}) uses {} decimals",
                self._token_info.symbol,
                self._token_info.address,
                self._token_info.decimals,
            )
            return self._token_info

    def get_market_info_batch(self, market_ids: Sequence[int]) -> list[MarketMetadata]:
        if not market_ids:
            return []
        ids = [int(market_id) for market_id in market_ids]
        questions, option_as, option_bs, *_ = self.contract.functions.getMarketInfoBatch(ids).call()
        metadata: list[MarketMetadata] = []
        for index, market_id in enumerate(ids):
            if index >= len(questions):
                break
            metadata.append(
                MarketMetadata(
                    market_id=market_id,
                    question=questions[index],
                    option_a=option_as[index],
                    option_b=option_bs[index],
                )
            )
        return metadata


__all__ = ["ChainClient", "EVENT_SIGNATURES", "MARKET_ABI", "TOKEN_ABI", "address_topic"]
