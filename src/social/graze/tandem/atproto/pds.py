"""Personal data server XRPC calls.

Only the calls the identity actions need: session creation, the emailed PLC
operation signature flow, recommended DID credentials, and account creation.
Responses are validated with Pydantic; anything unexpected raises ``PdsError``.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from aiohttp import ClientError, ClientSession
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from social.graze.tandem.errors import PdsError, TransportError

logger = logging.getLogger(__name__)


class CreatedSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_jwt: str = Field(alias="accessJwt")
    did: str
    handle: str


class ServerDescription(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    did: str
    invite_code_required: bool = Field(alias="inviteCodeRequired", default=False)
    available_user_domains: List[str] = Field(
        alias="availableUserDomains", default_factory=list
    )


class CreateAccountRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    handle: str
    email: str
    password: str
    recovery_key: str = Field(alias="recoveryKey")
    invite_code: Optional[str] = Field(alias="inviteCode", default=None)
    did: Optional[str] = None


class CreatedAccount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    did: str
    handle: str
    access_jwt: str = Field(alias="accessJwt")


class RecommendedCredentials(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rotation_keys: List[str] = Field(alias="rotationKeys", default_factory=list)
    also_known_as: List[str] = Field(alias="alsoKnownAs", default_factory=list)
    verification_methods: Dict[str, str] = Field(
        alias="verificationMethods", default_factory=dict
    )
    services: Dict[str, Any] = Field(default_factory=dict)


async def _xrpc(
    session: ClientSession,
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    body: Optional[Any] = None,
) -> Any:
    try:
        async with session.request(method, url, headers=headers, json=body) as resp:
            text = await resp.text()
            if resp.status != 200:
                logger.warning("XRPC %s failed: %s %s", url, resp.status, text)
                raise PdsError(f"response {resp.status} from {url}", text)
    except (ClientError, asyncio.TimeoutError) as e:
        raise TransportError(f"unable to call {url}: {e}", url) from e

    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError as e:
        raise PdsError(f"invalid JSON from {url}", text) from e


async def describe_server(session: ClientSession, pds_hostname: str) -> ServerDescription:
    url = f"https://{pds_hostname}/xrpc/com.atproto.server.describeServer"
    body = await _xrpc(session, "GET", url)
    try:
        return ServerDescription.model_validate(body)
    except ValidationError as e:
        raise PdsError("unexpected response from PDS", body) from e


async def create_account(
    session: ClientSession, pds_hostname: str, request: CreateAccountRequest
) -> CreatedAccount:
    url = f"https://{pds_hostname}/xrpc/com.atproto.server.createAccount"
    payload = request.model_dump(by_alias=True, exclude_none=True)
    body = await _xrpc(session, "POST", url, body=payload)
    try:
        return CreatedAccount.model_validate(body)
    except ValidationError as e:
        raise PdsError("unexpected response from PDS", body) from e


class PdsClient:
    """Authenticated XRPC client for a single PDS session."""

    def __init__(self, session: ClientSession, pds: str, access_jwt: str) -> None:
        self.session = session
        self.pds = pds.rstrip("/")
        self.access_jwt = access_jwt

    @staticmethod
    async def from_credentials(
        session: ClientSession, pds: str, identifier: str, password: str
    ) -> "PdsClient":
        url = f"{pds.rstrip('/')}/xrpc/com.atproto.server.createSession"
        body = await _xrpc(
            session,
            "POST",
            url,
            body={"identifier": identifier, "password": password},
        )
        try:
            created_session = CreatedSession.model_validate(body)
        except ValidationError as e:
            raise PdsError("unexpected response from PDS", body) from e
        return PdsClient(session, pds, created_session.access_jwt)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_jwt}"}

    async def request_plc_operation_signature(self) -> None:
        """Ask the PDS to email a confirmation token to the account holder."""
        url = f"{self.pds}/xrpc/com.atproto.identity.requestPlcOperationSignature"
        await _xrpc(self.session, "POST", url, headers=self._headers())

    async def get_recommended_did_credentials(self) -> RecommendedCredentials:
        url = f"{self.pds}/xrpc/com.atproto.identity.getRecommendedDidCredentials"
        body = await _xrpc(self.session, "GET", url, headers=self._headers())
        try:
            return RecommendedCredentials.model_validate(body)
        except ValidationError as e:
            raise PdsError("unexpected response from PDS", body) from e

    async def sign_plc_operation(
        self, document: Dict[str, Any], token: str
    ) -> Dict[str, Any]:
        """Have the PDS sign ``document`` with its rotation key."""
        url = f"{self.pds}/xrpc/com.atproto.identity.signPlcOperation"
        request_body = {**document, "token": token}
        body = await _xrpc(
            self.session, "POST", url, headers=self._headers(), body=request_body
        )
        if not isinstance(body, dict) or not isinstance(body.get("operation"), dict):
            raise PdsError("unexpected response from PDS", body)
        return body["operation"]

    async def submit_plc_operation(self, operation: Dict[str, Any]) -> None:
        url = f"{self.pds}/xrpc/com.atproto.identity.submitPlcOperation"
        await _xrpc(
            self.session,
            "POST",
            url,
            headers=self._headers(),
            body={"operation": operation},
        )
