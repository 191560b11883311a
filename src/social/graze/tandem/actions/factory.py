from typing import Any, Dict, Type

from social.graze.tandem.actions.append_handle import AppendHandleAction
from social.graze.tandem.actions.create_account import CreateAccountAction
from social.graze.tandem.actions.domain import Action, ActionKind
from social.graze.tandem.actions.install_key import InstallKeyAction
from social.graze.tandem.actions.migrate import MigrateAction

SUPPORTED_ACTIONS: Dict[ActionKind, str] = {
    ActionKind.install_key: "Install Tandem Key",
    ActionKind.create_account: "Create Account",
    ActionKind.migrate: "Migrate Account",
    ActionKind.append_handle: "Append Handle",
}

ACTIONS: Dict[ActionKind, Type[Action]] = {
    ActionKind.install_key: InstallKeyAction,
    ActionKind.create_account: CreateAccountAction,
    ActionKind.migrate: MigrateAction,
    ActionKind.append_handle: AppendHandleAction,
}


def get_action(kind: ActionKind, **inputs: Any) -> Action:
    """Construct the action for ``kind`` from its inputs.

    Raises:
        ValueError: ``kind`` is not an ActionKind
        TypeError: the inputs do not match the action's fields
    """
    return ACTIONS[ActionKind(kind)](**inputs)
