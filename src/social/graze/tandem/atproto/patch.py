"""JSON patch helpers for DID documents and operations.

Every document transformation tandem performs (adding a handle, installing a
rotation key, relinking an operation to a new chain tip) is expressed as a list
of RFC 6902 directives applied in order with ``jsonpatch``.
"""

from typing import Any, Dict, List, Literal, Sequence

import jsonpatch
import jsonpointer

from social.graze.tandem.errors import PatchApplicationError
from social.graze.tandem.model.plc import HANDLE_PREFIX

Directive = Dict[str, Any]
KeyPosition = Literal["first", "last"]


def apply_patch(document: Dict[str, Any], directives: Sequence[Directive]) -> Dict[str, Any]:
    """Apply ``directives`` to a copy of ``document``.

    Args:
        document: JSON tree (operation or document data view)
        directives: RFC 6902 directives, applied strictly in order

    Returns:
        The patched copy; ``document`` is left untouched

    Raises:
        PatchApplicationError: a directive is malformed, targets a path that
            does not exist, a ``test`` directive does not match, or the result
            is not a JSON object
    """
    try:
        patch = jsonpatch.JsonPatch(list(directives))
        patched = patch.apply(document, in_place=False)
    except (jsonpatch.JsonPatchException, jsonpointer.JsonPointerException) as e:
        raise PatchApplicationError(f"failed to apply patch: {e}", directives) from e
    if not isinstance(patched, dict):
        raise PatchApplicationError("patch replaced the document with a non-object", directives)
    return patched


def append_handle_directives(handle: str) -> List[Directive]:
    return [
        {"op": "add", "path": "/alsoKnownAs/-", "value": f"{HANDLE_PREFIX}{handle}"},
    ]


def install_rotation_key_directives(
    did_key: str, position: KeyPosition = "first"
) -> List[Directive]:
    """Install ``did_key`` as the highest (``first``) or lowest (``last``) priority rotation key."""
    if position == "first":
        path = "/rotationKeys/0"
    elif position == "last":
        path = "/rotationKeys/-"
    else:
        raise PatchApplicationError(f"unknown key position: {position!r}")
    return [{"op": "add", "path": path, "value": did_key}]


def relink_directives(prev: str) -> List[Directive]:
    """Drop the previous signature and point ``prev`` at the chain tip."""
    return [
        {"op": "remove", "path": "/sig"},
        {"op": "replace", "path": "/prev", "value": prev},
    ]
