"""DID-PLC operation construction and signing.

An operation is the full next state of a DID document plus ``prev`` (the CID
of the operation it follows) and ``sig`` (a signature over the DAG-CBOR
encoding of every other field). Operations form a singly linked, hash
addressed chain per DID.

Building the next operation:

1. Fetch the DID's audit log and pick the chain tip (latest ``createdAt``)
2. Clone the tip operation, drop ``sig``, point ``prev`` at the tip's CID and
   apply the caller's patch directives
3. Encode the unsigned operation as DAG-CBOR and sign those exact bytes
4. Store the base64url signature in ``sig``

The directory rejects a submission whose ``prev`` is no longer its tip. That
rejection surfaces as ``ChainConflict``; nothing here retries.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import dag_cbor
from aiohttp import ClientSession, ClientTimeout
from multiformats import CID, multihash

from social.graze.tandem.atproto.crypto import (
    SecretKey,
    decode_signature,
    did_key_from_secret,
    encode_signature,
    sign,
    verify,
)
from social.graze.tandem.atproto.patch import Directive, apply_patch, relink_directives
from social.graze.tandem.atproto.plc import did_plc_audit_log, submit_operation
from social.graze.tandem.errors import (
    ChainLinkageError,
    DidTombstoned,
    KeyCodecError,
    NoOperationsFound,
    SignatureError,
)
from social.graze.tandem.model.plc import TOMBSTONE_TYPE, AuditEntry

logger = logging.getLogger(__name__)


def encode_operation(operation: Dict[str, Any]) -> bytes:
    """Canonical DAG-CBOR encoding of an operation."""
    return dag_cbor.encode(operation)


def operation_cid(operation: Dict[str, Any]) -> str:
    """CIDv1 (dag-cbor, sha2-256, base32) of a signed operation."""
    digest = multihash.digest(encode_operation(operation), "sha2-256")
    return str(CID("base32", 1, "dag-cbor", digest))


def unsigned(operation: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in operation.items() if key != "sig"}


def active_entries(entries: Sequence[AuditEntry]) -> List[AuditEntry]:
    """Non-nullified entries ordered by ``createdAt`` ascending.

    The sort is stable, so entries sharing a timestamp keep the order the
    directory served them in.
    """
    active = [entry for entry in entries if not entry.nullified]
    ordered = sorted(active, key=lambda entry: entry.created_at)
    if [entry.cid for entry in ordered] != [entry.cid for entry in active]:
        logger.warning("Audit log order differs from createdAt order")
    return ordered


def select_chain_tip(entries: Sequence[AuditEntry], did: Optional[str] = None) -> AuditEntry:
    """Pick the entry with the greatest ``createdAt``.

    Raises:
        NoOperationsFound: the log has no active entries
    """
    ordered = active_entries(entries)
    if len(ordered) == 0:
        raise NoOperationsFound(did)
    return ordered[-1]


def validate_chain(entries: Sequence[AuditEntry], did: Optional[str] = None) -> AuditEntry:
    """Check hash linkage of the active chain and return its tip.

    Every active entry's CID must match its operation, the first must be a
    genesis operation and every later ``prev`` must name the entry before it.

    Raises:
        NoOperationsFound: the log has no active entries
        ChainLinkageError: a CID or ``prev`` link does not match
    """
    ordered = active_entries(entries)
    if len(ordered) == 0:
        raise NoOperationsFound(did)

    previous: Optional[str] = None
    for entry in ordered:
        computed = operation_cid(entry.operation)
        if computed != entry.cid:
            raise ChainLinkageError(
                f"operation CID {computed} does not match audit log CID {entry.cid}",
                did,
            )
        prev = entry.operation.get("prev")
        if prev != previous:
            raise ChainLinkageError(
                f"operation {entry.cid} links to {prev}, expected {previous}", did
            )
        previous = entry.cid

    return ordered[-1]


def build_operation(tip: AuditEntry, directives: Sequence[Directive] = ()) -> Dict[str, Any]:
    """Build the unsigned operation following ``tip``.

    Raises:
        DidTombstoned: the tip is a tombstone
        PatchApplicationError: the tip has no ``sig`` or ``prev`` field, or a
            caller directive does not apply
    """
    if tip.operation.get("type") == TOMBSTONE_TYPE:
        raise DidTombstoned(tip.did)
    return apply_patch(tip.operation, [*relink_directives(tip.cid), *directives])


def sign_operation(secret: SecretKey, operation: Dict[str, Any]) -> Dict[str, Any]:
    """Sign the DAG-CBOR encoding of ``operation`` (without ``sig``)."""
    fields = unsigned(operation)
    signature = sign(secret, encode_operation(fields))
    return {**fields, "sig": encode_signature(signature)}


def verify_operation(operation: Dict[str, Any], rotation_keys: Sequence[str]) -> str:
    """Find the rotation key that signed ``operation``.

    Returns:
        The first key in ``rotation_keys`` whose signature check passes

    Raises:
        SignatureError: no key verifies the signature
    """
    value = operation.get("sig")
    if not isinstance(value, str):
        raise SignatureError("operation is not signed")
    signature = decode_signature(value)
    payload = encode_operation(unsigned(operation))

    for rotation_key in rotation_keys:
        try:
            verify(rotation_key, signature, payload)
            return rotation_key
        except KeyCodecError:
            continue
    raise SignatureError("operation signature does not match any rotation key")


async def did_plc_last_operation(
    session: ClientSession,
    plc_hostname: str,
    did: str,
    timeout: Optional[ClientTimeout] = None,
) -> Tuple[str, Dict[str, Any]]:
    """Fetch the CID and operation at the tip of a DID's chain."""
    entries = await did_plc_audit_log(session, plc_hostname, did, timeout)
    tip = select_chain_tip(entries, did)
    return tip.cid, tip.operation


class ChainBuilder:
    """Builds, signs and submits the next operation for DIDs in one directory."""

    def __init__(
        self,
        session: ClientSession,
        plc_hostname: str,
        verify_chain: bool = True,
        timeout: Optional[ClientTimeout] = None,
    ) -> None:
        self.session = session
        self.plc_hostname = plc_hostname
        self.verify_chain = verify_chain
        self.timeout = timeout

    async def chain_tip(self, did: str) -> AuditEntry:
        entries = await did_plc_audit_log(
            self.session, self.plc_hostname, did, self.timeout
        )
        if self.verify_chain:
            tip = validate_chain(entries, did)
        else:
            tip = select_chain_tip(entries, did)
        if tip.did is None:
            tip = tip.model_copy(update={"did": did})
        logger.info("Chain tip for %s is %s (%s)", did, tip.cid, tip.created_at)
        return tip

    async def prepare(
        self, did: str, directives: Sequence[Directive] = ()
    ) -> Dict[str, Any]:
        """Build the unsigned next operation for ``did``."""
        tip = await self.chain_tip(did)
        return build_operation(tip, directives)

    async def build(
        self, did: str, secret: SecretKey, directives: Sequence[Directive] = ()
    ) -> Dict[str, Any]:
        """Build and sign the next operation for ``did``."""
        tip = await self.chain_tip(did)
        signing_key = did_key_from_secret(secret)
        if signing_key not in tip.operation.get("rotationKeys", []):
            logger.warning(
                "Signing key %s is not a rotation key of %s; the directory will reject the operation",
                signing_key,
                did,
            )
        return sign_operation(secret, build_operation(tip, directives))

    async def submit(self, did: str, operation: Dict[str, Any]) -> None:
        await submit_operation(
            self.session, self.plc_hostname, did, operation, self.timeout
        )
        logger.info("Submitted operation for %s", did)
