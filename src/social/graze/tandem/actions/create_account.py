import secrets
from dataclasses import dataclass
from typing import ClassVar, Optional

from social.graze.tandem.actions.domain import (
    Action,
    ActionContext,
    ActionKind,
    ActionResult,
    Step,
    StepKind,
    require_did_plc,
    require_handle,
)
from social.graze.tandem.atproto.crypto import (
    Curve,
    did_key_from_secret,
    generate_key,
    to_did_key,
)
from social.graze.tandem.atproto.pds import (
    CreateAccountRequest,
    create_account,
    describe_server,
)
from social.graze.tandem.errors import InputError, PdsError
from social.graze.tandem.resolve.handle import is_valid_hostname


@dataclass
class CreateAccountAction(Action):
    """Create an account on a PDS with a user controlled recovery key.

    The recovery key is either derived from ``secret_key`` or, when no secret
    is given, freshly generated on ``curve`` and returned to the caller.
    """

    kind: ClassVar[ActionKind] = ActionKind.create_account

    pds_hostname: str
    email: str
    password: str
    handle: Optional[str] = None
    invite_code: Optional[str] = None
    existing_did: Optional[str] = None
    secret_key: Optional[str] = None
    curve: Curve = Curve.p256

    async def execute(self, context: ActionContext) -> ActionResult:
        pds_hostname = self.pds_hostname.strip().lower()
        if not is_valid_hostname(pds_hostname):
            raise InputError(f"invalid PDS hostname: {self.pds_hostname}")
        existing_did = None
        if self.existing_did is not None:
            existing_did = require_did_plc(self.existing_did)

        secret_key: Optional[str] = None
        if self.secret_key is not None:
            did_key = did_key_from_secret(self.secret_key)
            context.report(Step(StepKind.derived_key, "Derived DID key", did_key))

        description = await describe_server(context.session, pds_hostname)
        context.report(
            Step(
                StepKind.described_server,
                "Retrieved PDS information",
                description.model_dump(),
            )
        )

        if len(description.available_user_domains) == 0:
            raise PdsError(
                "This PDS does not have any available domains. It is probably misconfigured."
            )
        if description.invite_code_required and not self.invite_code:
            raise InputError("This PDS requires an invite code.")

        if self.handle is None:
            handle = f"{secrets.token_hex(4)}{description.available_user_domains[0]}"
        else:
            handle = self.handle
        handle = require_handle(handle)

        if self.secret_key is None:
            secret_key, public_key = generate_key(self.curve)
            did_key = to_did_key(public_key)
            context.report(
                Step(
                    StepKind.generated_key,
                    "Important! Securely store the following private key.",
                    secret_key,
                    sensitive=True,
                )
            )

        created = await create_account(
            context.session,
            pds_hostname,
            CreateAccountRequest(
                handle=handle,
                email=self.email,
                password=self.password,
                recovery_key=did_key,
                invite_code=self.invite_code if description.invite_code_required else None,
                did=existing_did,
            ),
        )
        context.report(
            Step(
                StepKind.created_account,
                f"Account created: {created.did} ({created.handle})",
            )
        )

        return ActionResult(
            kind=self.kind,
            did=created.did,
            handle=created.handle,
            public_key=did_key,
            secret_key=secret_key,
            submitted=True,
        )
