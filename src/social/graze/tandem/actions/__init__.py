"""
Identity Actions

The fixed set of operations tandem performs on an identity. Each action is a
dataclass of its inputs implementing ``execute(context) -> ActionResult``;
``get_action`` selects the class for an ``ActionKind``.

Actions:
- install_key.py: Generate a rotation key and have the PDS install it
- create_account.py: Create a PDS account with a user held recovery key
- migrate.py: Repoint a DID at a new PDS, signed with a local rotation key
- append_handle.py: Add a handle to alsoKnownAs, signed with a local rotation key

Actions never print. Progress is reported as ``Step`` records through
``ActionContext.report`` and the caller decides how to present them.
"""

from social.graze.tandem.actions.domain import (
    Action,
    ActionContext,
    ActionKind,
    ActionResult,
    Step,
    StepKind,
)
from social.graze.tandem.actions.factory import ACTIONS, SUPPORTED_ACTIONS, get_action

__all__ = [
    "ACTIONS",
    "SUPPORTED_ACTIONS",
    "Action",
    "ActionContext",
    "ActionKind",
    "ActionResult",
    "Step",
    "StepKind",
    "get_action",
]
