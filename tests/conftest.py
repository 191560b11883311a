"""
Shared test configuration and fixtures for tandem tests.

Provides generated keys, a signed audit log chain, and a fake aiohttp session
that serves canned responses per (method, url).
"""

import json
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import ClientResponse

from social.graze.tandem.atproto.crypto import (
    Curve,
    did_key_from_secret,
    generate_key,
    to_did_key,
)
from social.graze.tandem.atproto.operation import operation_cid, sign_operation


TEST_DID = "did:plc:abc123"
TEST_PDS = "https://pds.example"
TEST_PLC = "plc.example"


def make_response(
    status: int = 200, json_body: Any = None, text_body: Optional[str] = None
) -> AsyncMock:
    response = AsyncMock(spec=ClientResponse)
    response.status = status
    response.json.return_value = json_body
    if text_body is None:
        text_body = json.dumps(json_body) if json_body is not None else ""
    response.text.return_value = text_body
    return response


class FakeSession:
    """Stands in for aiohttp.ClientSession with canned responses."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def add(
        self,
        method: str,
        url: str,
        status: int = 200,
        json_body: Any = None,
        text_body: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if error is not None:
            self.routes[(method, url)] = error
        else:
            self.routes[(method, url)] = make_response(status, json_body, text_body)

    def request(self, method: str, url: str, **kwargs: Any) -> MagicMock:
        self.calls.append((method, url, kwargs))
        target = self.routes.get((method, url))
        if target is None:
            target = make_response(404, None, "not found")

        context_manager = MagicMock()
        if isinstance(target, BaseException):
            context_manager.__aenter__ = AsyncMock(side_effect=target)
        else:
            context_manager.__aenter__ = AsyncMock(return_value=target)
        context_manager.__aexit__ = AsyncMock(return_value=False)
        return context_manager

    def get(self, url: str, **kwargs: Any) -> MagicMock:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> MagicMock:
        return self.request("POST", url, **kwargs)

    def calls_to(self, method: str, url: str) -> List[Dict[str, Any]]:
        return [kwargs for m, u, kwargs in self.calls if m == method and u == url]


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def p256_key() -> Tuple[str, str]:
    return generate_key(Curve.p256)


@pytest.fixture
def k256_key() -> Tuple[str, str]:
    return generate_key(Curve.k256)


def build_chain(secret_key: str, did: str = TEST_DID) -> List[Dict[str, Any]]:
    """Build a two entry audit log signed with ``secret_key``.

    Entries are returned newest first so that tests exercise ordering by
    ``createdAt`` rather than by position.
    """
    did_key = did_key_from_secret(secret_key)
    genesis = sign_operation(
        secret_key,
        {
            "type": "plc_operation",
            "rotationKeys": [did_key],
            "verificationMethods": {"atproto": did_key},
            "alsoKnownAs": ["at://alice.example"],
            "services": {
                "atproto_pds": {
                    "type": "AtprotoPersonalDataServer",
                    "endpoint": TEST_PDS,
                }
            },
            "prev": None,
        },
    )
    genesis_cid = operation_cid(genesis)

    update = {key: value for key, value in genesis.items() if key != "sig"}
    update["alsoKnownAs"] = ["at://alice.example", "at://alice.other.example"]
    update["prev"] = genesis_cid
    update = sign_operation(secret_key, update)
    update_cid = operation_cid(update)

    return [
        {
            "did": did,
            "cid": update_cid,
            "operation": update,
            "nullified": False,
            "createdAt": "2024-02-01T12:00:00.000Z",
        },
        {
            "did": did,
            "cid": genesis_cid,
            "operation": genesis,
            "nullified": False,
            "createdAt": "2024-01-01T12:00:00.000Z",
        },
    ]


@pytest.fixture
def audit_chain(p256_key) -> Tuple[str, str, List[Dict[str, Any]]]:
    """Secret key, its did:key, and a valid audit log signed by it."""
    secret_key, public_key = p256_key
    return secret_key, to_did_key(public_key), build_chain(secret_key)
