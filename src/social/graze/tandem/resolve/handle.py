"""AT Protocol handle and DID resolution with bidirectional verification.

A handle and a DID are supposed to vouch for each other: the DID document
lists the handle in ``alsoKnownAs`` and the handle publishes the DID through a
DNS TXT record (``_atproto.{handle}``) or an HTTPS well-known document
(``https://{handle}/.well-known/atproto-did``).

``resolve_subject`` starts from either side and walks both until nothing new
is discovered, then insists that everything it found agrees on one DID and
one PDS. Individual sources are allowed to fail; sources that disagree are
not.
"""

import asyncio
import logging
from enum import IntEnum
from typing import Optional, Set

import sentry_sdk
from aiodns import DNSResolver
from aiohttp import ClientError, ClientSession, ClientTimeout
from pydantic import BaseModel, ValidationError

from social.graze.tandem.atproto.plc import plc_resolve_did
from social.graze.tandem.errors import (
    AmbiguousHandle,
    InvalidDID,
    InvalidHandle,
    MultipleDIDs,
    MultiplePDS,
    NoDIDsFound,
    NoHandlesFound,
    NoPDSFound,
    ResolutionDepthExceeded,
    TransportError,
)
from social.graze.tandem.model.identity import ResolvedIdentity
from social.graze.tandem.model.plc import DidDocument, HANDLE_PREFIX

logger = logging.getLogger(__name__)

DID_PREFIX = "did:"
DID_PLC_PREFIX = "did:plc:"
DID_WEB_PREFIX = "did:web:"

RESERVED_SUFFIXES = (".local", ".localhost", ".internal", ".arpa")

DEFAULT_MAX_ITERATIONS = 10
DEFAULT_WELL_KNOWN_TIMEOUT = 10.0


class SubjectType(IntEnum):
    """AT Protocol subject type enumeration.

    Identifies whether a subject is a DID or handle requiring resolution.
    """

    did_method_plc = 1
    did_method_web = 2
    hostname = 3


class ParsedSubject(BaseModel):
    """Parsed AT Protocol subject input.

    Contains the classified subject type and normalized subject string.
    """

    subject_type: SubjectType
    subject: str


def is_valid_hostname(hostname: str) -> bool:
    """Check that ``hostname`` is an RFC hostname outside the reserved suffixes.

    Labels must be 1-63 characters of ``[A-Za-z0-9-]`` and may not start or
    end with ``-``. The whole name must be 1-253 characters.
    """
    if len(hostname) == 0 or len(hostname) > 253:
        return False
    if hostname.lower().endswith(RESERVED_SUFFIXES):
        return False
    if any(not (c.isascii() and (c.isalnum() or c in "-.")) for c in hostname):
        return False
    for label in hostname.split("."):
        if len(label) == 0 or len(label) > 63:
            return False
        if label.startswith("-") or label.endswith("-"):
            return False
    return True


def is_valid_handle(handle: str) -> Optional[str]:
    """Normalize a handle, or return None when it is not valid.

    Strips ``at://`` or ``@`` and lower-cases the result, which must be a valid
    hostname containing at least one dot.
    """
    trimmed = handle.strip()
    if trimmed.startswith(HANDLE_PREFIX):
        trimmed = trimmed.removeprefix(HANDLE_PREFIX)
    else:
        trimmed = trimmed.removeprefix("@")
    trimmed = trimmed.lower()
    if is_valid_hostname(trimmed) and "." in trimmed:
        return trimmed
    return None


def is_valid_did(did: str) -> Optional[str]:
    """Normalize a did:plc or did:web DID, or return None when it is not valid."""
    trimmed = did.strip().removeprefix(HANDLE_PREFIX)
    for prefix in (DID_PLC_PREFIX, DID_WEB_PREFIX):
        if trimmed.startswith(prefix):
            identifier = trimmed.removeprefix(prefix)
            if len(identifier) > 0 and all(
                c.isascii() and (c.isalnum() or c in "._:%-") for c in identifier
            ):
                return trimmed
    return None


def parse_input(subject: str) -> ParsedSubject:
    """Parse and classify AT Protocol subject input.

    Normalizes input by removing prefixes and classifies as DID or handle.

    Args:
        subject: Raw subject string (handle, DID, or prefixed)

    Returns:
        ParsedSubject with type and normalized string

    Raises:
        InvalidDID: the subject looks like a DID but is not a did:plc/did:web DID
        InvalidHandle: the subject is not a valid handle
    """
    trimmed = subject.strip().removeprefix(HANDLE_PREFIX).removeprefix("@")

    if trimmed.startswith(DID_PREFIX):
        did = is_valid_did(trimmed)
        if did is None:
            raise InvalidDID(subject)
        if did.startswith(DID_PLC_PREFIX):
            return ParsedSubject(subject_type=SubjectType.did_method_plc, subject=did)
        return ParsedSubject(subject_type=SubjectType.did_method_web, subject=did)

    handle = is_valid_handle(trimmed)
    if handle is None:
        raise InvalidHandle(subject)
    return ParsedSubject(subject_type=SubjectType.hostname, subject=handle)


async def resolve_handle_dns(handle: str) -> Optional[str]:
    """Resolve AT Protocol handle to DID using DNS TXT record.

    Queries _atproto.{handle} TXT record and extracts DID from did= prefix.

    Args:
        handle: AT Protocol handle to resolve

    Returns:
        DID string if found, None if resolution fails

    Raises:
        AmbiguousHandle: the records name more than one distinct DID
    """
    resolver = DNSResolver()
    try:
        results = await resolver.query(f"_atproto.{handle}", "TXT")
    except Exception as e:
        logger.debug("DNS lookup for %s failed: %s", handle, e)
        sentry_sdk.capture_exception(e)
        return None

    dids: Set[str] = set()
    for record in results or []:
        text = record.text
        if isinstance(text, bytes):
            text = text.decode("utf-8", errors="replace")
        if text.startswith("did="):
            dids.add(text.removeprefix("did=").strip())

    if len(dids) > 1:
        raise AmbiguousHandle(handle, dids)
    return next(iter(dids), None)


async def resolve_handle_http(
    session: ClientSession,
    handle: str,
    timeout: float = DEFAULT_WELL_KNOWN_TIMEOUT,
) -> Optional[str]:
    """Resolve AT Protocol handle to DID using HTTPS well-known endpoint.

    Fetches DID from https://{handle}/.well-known/atproto-did endpoint.

    Args:
        session: HTTP client session
        handle: AT Protocol handle to resolve
        timeout: Total request timeout in seconds

    Returns:
        DID string if found, None if resolution fails or the body is not a DID
    """
    url = f"https://{handle}/.well-known/atproto-did"
    try:
        async with session.get(url, timeout=ClientTimeout(total=timeout)) as resp:
            if resp.status != 200:
                return None
            body = await resp.text()
    except (ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.debug("Well-known lookup for %s failed: %s", handle, e)
        sentry_sdk.capture_exception(e)
        return None

    if body is None:
        return None
    body = body.strip()
    if not body.startswith(DID_PREFIX):
        logger.debug("Invalid response from %s", url)
        return None
    return body


async def resolve_handle(
    session: ClientSession,
    handle: str,
    timeout: float = DEFAULT_WELL_KNOWN_TIMEOUT,
) -> Set[str]:
    """Resolve AT Protocol handle to DIDs using HTTPS and DNS concurrently.

    Both sources are consulted and every DID they report is returned, so that
    a disagreement between them is visible to the caller.

    Args:
        session: HTTP client session
        handle: AT Protocol handle to resolve
        timeout: HTTPS well-known timeout in seconds

    Returns:
        DIDs reported by either method, empty if both fail
    """
    try:
        async with asyncio.TaskGroup() as tg:
            http_result = tg.create_task(resolve_handle_http(session, handle, timeout))
            dns_result = tg.create_task(resolve_handle_dns(handle))
    except ExceptionGroup as eg:
        ambiguous = eg.subgroup(AmbiguousHandle)
        if ambiguous is None:
            raise
        raise ambiguous.exceptions[0] from None
    dids = (http_result.result(), dns_result.result())
    return {did for did in dids if did is not None}


def handle_predicate(value: str) -> bool:
    """Check if value is an AT Protocol handle reference.

    Args:
        value: String to check

    Returns:
        True if value starts with at:// prefix
    """
    return value is not None and value.startswith(HANDLE_PREFIX)


async def resolve_did_method_web(session: ClientSession, did: str) -> DidDocument:
    """Fetch the DID document of a did:web DID.

    Constructs the did.json URL from the DID: a bare host uses
    ``/.well-known/did.json``, a host with path segments uses
    ``/{segments}/did.json``.

    Raises:
        TransportError: the document could not be fetched or parsed
    """
    parts = did.removeprefix(DID_WEB_PREFIX).split(":")
    if len(parts) == 1:
        parts.append(".well-known")

    url = "https://{inner}/did.json".format(inner="/".join(parts))

    try:
        async with session.get(url) as resp:
            if resp.status != 200:
                raise TransportError(f"response {resp.status} from {url}", url)
            body = await resp.json()
    except (ClientError, asyncio.TimeoutError, ValueError) as e:
        raise TransportError(f"unable to get {url}: {e}", url) from e

    try:
        return DidDocument.model_validate(body)
    except ValidationError as e:
        raise TransportError(f"unable to deserialize DID document from {url}", url) from e


async def query_did_document(
    session: ClientSession, plc_hostname: str, did: str
) -> DidDocument:
    """Fetch the current DID document for a did:plc or did:web DID.

    Raises:
        TransportError: the document could not be fetched
        InvalidDID: the DID method is not supported
    """
    if did.startswith(DID_PLC_PREFIX):
        return await plc_resolve_did(session, plc_hostname, did)
    elif did.startswith(DID_WEB_PREFIX):
        return await resolve_did_method_web(session, did)
    raise InvalidDID(did)


async def resolve_subject(
    session: ClientSession,
    plc_hostname: str,
    subject: str,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    well_known_timeout: float = DEFAULT_WELL_KNOWN_TIMEOUT,
) -> ResolvedIdentity:
    """Resolve and verify a handle or DID.

    Alternates between resolving one pending DID (directory lookup yields
    handles and PDS endpoints) and one pending handle (HTTPS and DNS yield
    DIDs) until neither frontier has anything left to resolve.

    Args:
        session: HTTP client session
        plc_hostname: PLC directory hostname
        subject: Handle or DID to resolve
        max_iterations: Loop bound before giving up
        well_known_timeout: HTTPS well-known timeout in seconds

    Returns:
        ResolvedIdentity with the single DID, single PDS and all handles

    Raises:
        InvalidHandle, InvalidDID: the subject is malformed
        ResolutionDepthExceeded: the frontiers did not close in time
        AmbiguousHandle: a handle's DNS records name several DIDs
        MultipleDIDs, MultiplePDS: sources disagree
        NoHandlesFound, NoDIDsFound, NoPDSFound: nothing verified the subject
    """
    parsed_subject = parse_input(subject)

    resolved_dids: Set[str] = set()
    unresolved_dids: Set[str] = set()
    resolved_handles: Set[str] = set()
    unresolved_handles: Set[str] = set()

    found_pds: Set[str] = set()
    found_handles: Set[str] = set()
    found_dids: Set[str] = set()

    if parsed_subject.subject_type == SubjectType.hostname:
        unresolved_handles.add(parsed_subject.subject)
    else:
        unresolved_dids.add(parsed_subject.subject)

    iterations = 0
    while True:
        iterations += 1
        if iterations > max_iterations:
            raise ResolutionDepthExceeded(subject, max_iterations)

        pending_dids = unresolved_dids - resolved_dids
        pending_handles = unresolved_handles - resolved_handles
        if len(pending_dids) == 0 and len(pending_handles) == 0:
            break

        if len(pending_dids) > 0:
            next_did = min(pending_dids)
            resolved_dids.add(next_did)
            try:
                document = await query_did_document(session, plc_hostname, next_did)
            except (TransportError, InvalidDID) as e:
                logger.info("Unable to resolve %s: %s", next_did, e)
                sentry_sdk.capture_exception(e)
            else:
                found_pds.update(document.pds_endpoints())
                for value in filter(handle_predicate, document.also_known_as):
                    handle = is_valid_handle(value)
                    if handle is None:
                        logger.warning("Ignoring invalid handle %s of %s", value, next_did)
                        continue
                    found_handles.add(handle)
                    unresolved_handles.add(handle)

        if len(pending_handles) > 0:
            next_handle = min(pending_handles)
            resolved_handles.add(next_handle)
            dids = await resolve_handle(session, next_handle, well_known_timeout)
            found_dids.update(dids)
            unresolved_dids.update(dids)

    logger.debug(
        "Resolved %s in %d iterations: dids=%s handles=%s pds=%s",
        subject,
        iterations,
        found_dids,
        found_handles,
        found_pds,
    )

    if len(found_dids) > 1:
        raise MultipleDIDs(subject, found_dids)
    if len(found_handles) == 0:
        raise NoHandlesFound(subject)
    if len(found_pds) > 1:
        raise MultiplePDS(subject, found_pds)
    if len(found_dids) == 0:
        raise NoDIDsFound(subject)
    if len(found_pds) == 0:
        raise NoPDSFound(subject)

    return ResolvedIdentity(
        did=next(iter(found_dids)),
        pds=next(iter(found_pds)),
        handles=sorted(found_handles),
    )
