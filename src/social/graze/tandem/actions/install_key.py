from dataclasses import dataclass
from typing import ClassVar

from social.graze.tandem.actions.domain import (
    Action,
    ActionContext,
    ActionKind,
    ActionResult,
    Step,
    StepKind,
    require_handle,
)
from social.graze.tandem.atproto.crypto import Curve, generate_key, to_did_key
from social.graze.tandem.atproto.patch import (
    KeyPosition,
    apply_patch,
    install_rotation_key_directives,
)
from social.graze.tandem.atproto.pds import PdsClient
from social.graze.tandem.atproto.plc import did_plc_data
from social.graze.tandem.resolve.handle import resolve_subject


@dataclass
class InstallKeyAction(Action):
    """Generate a rotation key and install it in the DID-PLC document.

    The PDS holds the account's current rotation key, so the operation is
    signed by the PDS after the account holder confirms with the code it
    emails them. The password must be the account password, not an app
    password.
    """

    kind: ClassVar[ActionKind] = ActionKind.install_key

    handle: str
    password: str
    curve: Curve = Curve.p256
    position: KeyPosition = "first"

    async def execute(self, context: ActionContext) -> ActionResult:
        handle = require_handle(self.handle)
        settings = context.settings

        identity = await resolve_subject(
            context.session,
            settings.plc_hostname,
            handle,
            max_iterations=settings.max_resolution_depth,
            well_known_timeout=settings.well_known_timeout,
        )
        context.report(
            Step(
                StepKind.resolved_identity,
                f"Resolved {identity.did} ({identity.pds}) known as {' '.join(identity.handles)}",
                identity.model_dump(),
            )
        )

        pds_client = await PdsClient.from_credentials(
            context.session, identity.pds, identity.did, self.password
        )
        context.report(Step(StepKind.authenticated, f"Authenticated with {identity.pds}"))

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

        document = await did_plc_data(context.session, settings.plc_hostname, identity.did)
        document = apply_patch(
            document, install_rotation_key_directives(did_key, self.position)
        )
        context.report(Step(StepKind.patched_document, "Created patch document", document))

        await pds_client.request_plc_operation_signature()
        context.report(
            Step(
                StepKind.requested_confirmation,
                "Check your email for a confirmation code.",
            )
        )
        token = await context.request_confirmation_code()

        operation = await pds_client.sign_plc_operation(document, token)
        context.report(
            Step(StepKind.signed_operation, "Acquired signed PLC operation", operation)
        )

        await pds_client.submit_plc_operation(operation)
        context.report(
            Step(StepKind.submitted_operation, "Submitted signed PLC operation")
        )

        return ActionResult(
            kind=self.kind,
            did=identity.did,
            handle=handle,
            public_key=did_key,
            secret_key=secret_key,
            operation=operation,
            submitted=True,
        )
