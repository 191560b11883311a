"""Shared types for identity actions.

Actions report progress as structured ``Step`` records through the context's
``report`` callback and return an ``ActionResult``. Rendering either of them is
left to the caller.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, ClassVar, Dict, Optional

from aiohttp import ClientSession, ClientTimeout
from pydantic import BaseModel

from social.graze.tandem.app.config import Settings
from social.graze.tandem.atproto.operation import ChainBuilder
from social.graze.tandem.errors import InputError, InvalidDID, InvalidHandle
from social.graze.tandem.resolve.handle import DID_PLC_PREFIX, is_valid_did, is_valid_handle


class ActionKind(IntEnum):
    """The fixed set of actions tandem can perform."""

    install_key = 0
    create_account = 1
    migrate = 2
    append_handle = 3


class StepKind(str, Enum):
    derived_key = "derived_key"
    generated_key = "generated_key"
    resolved_identity = "resolved_identity"
    authenticated = "authenticated"
    described_server = "described_server"
    retrieved_operation = "retrieved_operation"
    retrieved_credentials = "retrieved_credentials"
    patched_document = "patched_document"
    prepared_operation = "prepared_operation"
    requested_confirmation = "requested_confirmation"
    signed_operation = "signed_operation"
    submitted_operation = "submitted_operation"
    created_account = "created_account"


@dataclass
class Step:
    kind: StepKind
    message: str
    detail: Any = None
    sensitive: bool = False
    """Set when ``detail`` holds secret key material the user must store."""


Reporter = Callable[[Step], None]
ConfirmationCode = Callable[[], Awaitable[str]]


def _ignore(step: Step) -> None:
    pass


@dataclass
class ActionContext:
    session: ClientSession
    settings: Settings = field(default_factory=Settings)
    report: Reporter = _ignore
    confirmation_code: Optional[ConfirmationCode] = None

    def chain_builder(self) -> ChainBuilder:
        return ChainBuilder(
            self.session,
            self.settings.plc_hostname,
            verify_chain=self.settings.verify_chain,
            timeout=ClientTimeout(total=self.settings.http_timeout),
        )

    async def request_confirmation_code(self) -> str:
        if self.confirmation_code is None:
            raise InputError("a confirmation code is required to continue")
        code = (await self.confirmation_code()).strip()
        if len(code) == 0:
            raise InputError("a confirmation code is required to continue")
        return code


class ActionResult(BaseModel):
    kind: ActionKind
    did: Optional[str] = None
    handle: Optional[str] = None
    public_key: Optional[str] = None
    secret_key: Optional[str] = None
    operation: Optional[Dict[str, Any]] = None
    submitted: bool = False


class Action(ABC):
    kind: ClassVar[ActionKind]

    @abstractmethod
    async def execute(self, context: ActionContext) -> ActionResult:
        pass


def require_handle(value: str) -> str:
    handle = is_valid_handle(value)
    if handle is None:
        raise InvalidHandle(value)
    return handle


def require_did_plc(value: str) -> str:
    did = is_valid_did(value)
    if did is None or not did.startswith(DID_PLC_PREFIX):
        raise InvalidDID(value)
    return did


def pds_url(value: str) -> str:
    """Accept a PDS as a bare hostname or a URL."""
    value = value.strip().rstrip("/")
    if value.startswith("https://") or value.startswith("http://"):
        return value
    return f"https://{value}"
