from dataclasses import dataclass
from typing import ClassVar, List

from social.graze.tandem.actions.domain import (
    Action,
    ActionContext,
    ActionKind,
    ActionResult,
    Step,
    StepKind,
    pds_url,
    require_did_plc,
)
from social.graze.tandem.atproto.crypto import did_key_from_secret
from social.graze.tandem.atproto.operation import build_operation, sign_operation
from social.graze.tandem.atproto.patch import Directive
from social.graze.tandem.atproto.pds import PdsClient, RecommendedCredentials


def migration_directives(
    did_key: str, credentials: RecommendedCredentials
) -> List[Directive]:
    """Point a DID at the destination PDS while keeping ``did_key`` in control.

    The local key stays the highest priority rotation key; the destination's
    recommended rotation keys follow it. Handles are only replaced when the
    destination recommends some.
    """
    rotation_keys = [did_key]
    rotation_keys.extend(key for key in credentials.rotation_keys if key != did_key)

    directives: List[Directive] = [
        {"op": "replace", "path": "/rotationKeys", "value": rotation_keys},
        {
            "op": "replace",
            "path": "/verificationMethods",
            "value": credentials.verification_methods,
        },
        {"op": "replace", "path": "/services", "value": credentials.services},
    ]
    if len(credentials.also_known_as) > 0:
        directives.append(
            {"op": "replace", "path": "/alsoKnownAs", "value": credentials.also_known_as}
        )
    return directives


@dataclass
class MigrateAction(Action):
    """Move a DID-PLC identity to a different PDS.

    The destination account must already exist (see ``CreateAccountAction``
    with an existing DID). The operation is signed locally with
    ``secret_key``, which must be one of the DID's current rotation keys.
    """

    kind: ClassVar[ActionKind] = ActionKind.migrate

    did: str
    secret_key: str
    destination_pds: str
    destination_password: str
    submit: bool = True

    async def execute(self, context: ActionContext) -> ActionResult:
        did = require_did_plc(self.did)
        destination = pds_url(self.destination_pds)

        did_key = did_key_from_secret(self.secret_key)
        context.report(Step(StepKind.derived_key, "Derived DID key", did_key))

        pds_client = await PdsClient.from_credentials(
            context.session, destination, did, self.destination_password
        )
        context.report(Step(StepKind.authenticated, f"Authenticated with {destination}"))

        credentials = await pds_client.get_recommended_did_credentials()
        context.report(
            Step(
                StepKind.retrieved_credentials,
                "Retrieved recommended DID credentials",
                credentials.model_dump(by_alias=True),
            )
        )

        builder = context.chain_builder()
        tip = await builder.chain_tip(did)
        context.report(
            Step(
                StepKind.retrieved_operation,
                "Retrieved last operation",
                {"cid": tip.cid, "operation": tip.operation},
            )
        )

        operation = build_operation(tip, migration_directives(did_key, credentials))
        context.report(
            Step(StepKind.prepared_operation, "Prepared operation for signing", operation)
        )

        signed_operation = sign_operation(self.secret_key, operation)
        context.report(Step(StepKind.signed_operation, "Signed operation", signed_operation))

        result = ActionResult(
            kind=self.kind, did=did, public_key=did_key, operation=signed_operation
        )
        if not self.submit:
            return result

        await builder.submit(did, signed_operation)
        context.report(Step(StepKind.submitted_operation, "Operation submitted"))
        result.submitted = True
        return result
