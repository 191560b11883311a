"""PLC directory client.

Thin wrappers over the directory's HTTP interface:

- ``GET https://{directory}/{did}``: resolved DID document
- ``GET https://{directory}/{did}/data``: document data view
- ``GET https://{directory}/{did}/log/audit``: operation log
- ``POST https://{directory}/{did}``: submit a signed operation

Network and decoding failures raise ``TransportError``. Callers decide whether
that failure is fatal.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from aiohttp import ClientError, ClientSession, ClientTimeout
from pydantic import TypeAdapter, ValidationError

from social.graze.tandem.errors import (
    ChainConflict,
    OperationRejected,
    TransportError,
)
from social.graze.tandem.model.plc import AuditEntry, DidDocument

logger = logging.getLogger(__name__)

_audit_log_adapter = TypeAdapter(List[AuditEntry])


def _timeout_kwargs(timeout: Optional[ClientTimeout]) -> Dict[str, Any]:
    # Leave the session default in place unless a call overrides it.
    if timeout is None:
        return {}
    return {"timeout": timeout}


async def _get_json(
    session: ClientSession, url: str, timeout: Optional[ClientTimeout] = None
) -> Any:
    try:
        async with session.get(url, **_timeout_kwargs(timeout)) as resp:
            if resp.status != 200:
                raise TransportError(f"response {resp.status} from {url}", url)
            return await resp.json()
    except (ClientError, asyncio.TimeoutError, ValueError) as e:
        raise TransportError(f"unable to get {url}: {e}", url) from e


async def plc_resolve_did(
    session: ClientSession,
    plc_hostname: str,
    did: str,
    timeout: Optional[ClientTimeout] = None,
) -> DidDocument:
    url = f"https://{plc_hostname}/{did}"
    body = await _get_json(session, url, timeout)
    try:
        return DidDocument.model_validate(body)
    except ValidationError as e:
        raise TransportError(f"unable to deserialize DID document from {url}", url) from e


async def plc_query(
    session: ClientSession,
    plc_hostname: str,
    did: str,
    timeout: Optional[ClientTimeout] = None,
) -> Tuple[List[str], List[str]]:
    """Look up a DID's PDS endpoints and handles.

    Returns:
        Tuple of (PDS endpoints, handles with the ``at://`` prefix removed)
    """
    document = await plc_resolve_did(session, plc_hostname, did, timeout)
    return document.pds_endpoints(), document.handles()


async def did_plc_data(
    session: ClientSession,
    plc_hostname: str,
    did: str,
    timeout: Optional[ClientTimeout] = None,
) -> Dict[str, Any]:
    url = f"https://{plc_hostname}/{did}/data"
    body = await _get_json(session, url, timeout)
    if not isinstance(body, dict):
        raise TransportError(f"unable to deserialize DID document from {url}", url)
    return body


async def did_plc_audit_log(
    session: ClientSession,
    plc_hostname: str,
    did: str,
    timeout: Optional[ClientTimeout] = None,
) -> List[AuditEntry]:
    url = f"https://{plc_hostname}/{did}/log/audit"
    logger.debug("Fetching audit log %s", url)
    body = await _get_json(session, url, timeout)
    try:
        return _audit_log_adapter.validate_python(body)
    except ValidationError as e:
        raise TransportError(f"unable to deserialize DID audit log from {url}", url) from e


def _is_chain_conflict(status: int, body: str) -> bool:
    if status == 409:
        return True
    return status == 400 and "prev" in body.lower()


async def submit_operation(
    session: ClientSession,
    plc_hostname: str,
    did: str,
    operation: Dict[str, Any],
    timeout: Optional[ClientTimeout] = None,
) -> None:
    """Submit a signed operation.

    Raises:
        ChainConflict: the directory's tip no longer matches ``prev``
        OperationRejected: any other non-2xx response
        TransportError: the request could not be made
    """
    url = f"https://{plc_hostname}/{did}"
    try:
        async with session.post(url, json=operation, **_timeout_kwargs(timeout)) as resp:
            if 200 <= resp.status < 300:
                return
            body = await resp.text()
    except (ClientError, asyncio.TimeoutError) as e:
        raise TransportError(f"unable to submit operation to {url}: {e}", url) from e

    logger.warning("Operation for %s rejected: %s %s", did, resp.status, body)
    if _is_chain_conflict(resp.status, body):
        raise ChainConflict(url, resp.status, body)
    raise OperationRejected(url, resp.status, body)
