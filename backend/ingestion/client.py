from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
from loguru import logger

from app.core.config import settings
from app.domain import Identity

from .errors import ConfigurationError

BULK_BY_ADDRESS_PATH = "/v2/farcaster/user/bulk-by-address"
ADDRESS_TYPES = ("custody_address", "verified_address")


class NeynarClient:
    """Thin wrapper around the Neynar bulk user lookup endpoint."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.neynar_api_key
        self.base_url = base_url or str(settings.neynar_base_url)
        self.timeout = timeout
        client_kwargs: dict[str, Any] = {"base_url": self.base_url, "timeout": timeout}
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.Client(**client_kwargs)

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("NEYNAR_API_KEY is not configured")
        return self.api_key

    @staticmethod
    def _parse_user(address: str, raw_user: Any) -> Identity | None:
        if not isinstance(raw_user, dict):
            return None
        username = raw_user.get("username")
        fid = raw_user.get("fid")
        if not username or fid is None:
            return None
        avatar = raw_user.get("pfp_url") or None
        return Identity(
            address=address,
            display_name=str(username),
            numeric_id=str(fid),
            avatar_url=str(avatar) if avatar else None,
        )

    def fetch_users(self, addresses: Sequence[str]) -> dict[str, Identity]:
        """Return the first registered identity for each address that has one."""

        api_key = self._require_api_key()
        if not addresses:
            return {}
        params = {
            "addresses": ",".join(addresses),
            "address_types": ",".join(ADDRESS_TYPES),
        }
        logger.info("Neynar GET {} for {} addresses", BULK_BY_ADDRESS_PATH, len(addresses))
        response = self.client.get(
            BULK_BY_ADDRESS_PATH,
            params=params,
            headers={"x-api-key": api_key, "accept": "application/json"},
        )
        if response.status_code == 404:
            # Neynar answers 404 when none of the addresses has a user
            return {}
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            return {}

        identities: dict[str, Identity] = {}
        for raw_address, users in payload.items():
            address = str(raw_address).lower()
            if not isinstance(users, list):
                continue
            for raw_user in users:
                identity = self._parse_user(address, raw_user)
                if identity is not None:
                    identities[address] = identity
                    break
        return identities

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "NeynarClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["ADDRESS_TYPES", "BULK_BY_ADDRESS_PATH", "NeynarClient"]
