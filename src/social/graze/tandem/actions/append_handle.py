from dataclasses import dataclass
from typing import ClassVar

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
from social.graze.tandem.atproto.crypto import did_key_from_secret
from social.graze.tandem.atproto.operation import build_operation, sign_operation
from social.graze.tandem.atproto.patch import append_handle_directives


@dataclass
class AppendHandleAction(Action):
    """Append a handle to the ``alsoKnownAs`` field of a DID-PLC document.

    The operation is signed locally, so ``secret_key`` must belong to one of
    the DID's rotation keys.
    """

    kind: ClassVar[ActionKind] = ActionKind.append_handle

    did: str
    secret_key: str
    handle: str
    submit: bool = True

    async def execute(self, context: ActionContext) -> ActionResult:
        did = require_did_plc(self.did)
        handle = require_handle(self.handle)

        # Shown before any network call so the user can confirm key custody.
        did_key = did_key_from_secret(self.secret_key)
        context.report(Step(StepKind.derived_key, "Derived DID key", did_key))

        builder = context.chain_builder()
        tip = await builder.chain_tip(did)
        context.report(
            Step(
                StepKind.retrieved_operation,
                "Retrieved last operation",
                {"cid": tip.cid, "operation": tip.operation},
            )
        )

        operation = build_operation(tip, append_handle_directives(handle))
        context.report(
            Step(StepKind.prepared_operation, "Prepared operation for signing", operation)
        )

        signed_operation = sign_operation(self.secret_key, operation)
        context.report(Step(StepKind.signed_operation, "Signed operation", signed_operation))

        result = ActionResult(
            kind=self.kind,
            did=did,
            handle=handle,
            public_key=did_key,
            operation=signed_operation,
        )
        if not self.submit:
            return result

        await builder.submit(did, signed_operation)
        context.report(Step(StepKind.submitted_operation, "Operation submitted"))
        result.submitted = True
        return result
