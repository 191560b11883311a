"""
Unit tests for the PLC directory client in social.graze.tandem.atproto.plc
"""

import asyncio

import pytest
from aiohttp import ClientConnectionError

from social.graze.tandem.atproto.plc import (
    did_plc_audit_log,
    did_plc_data,
    plc_query,
    plc_resolve_did,
    submit_operation,
)
from social.graze.tandem.errors import ChainConflict, OperationRejected, TransportError

DID = "did:plc:abc123"
PLC = "plc.directory"

DOCUMENT = {
    "@context": ["https://www.w3.org/ns/did/v1"],
    "id": DID,
    "alsoKnownAs": ["at://alice.example", "https://alice.example"],
    "verificationMethod": [],
    "service": [
        {
            "id": "#atproto_pds",
            "type": "AtprotoPersonalDataServer",
            "serviceEndpoint": "https://pds.example",
        },
        {
            "id": "#other",
            "type": "SomethingElse",
            "serviceEndpoint": "https://other.example",
        },
    ],
}


class TestPlcResolveDid:
    """Test suite for DID document lookups."""

    @pytest.mark.asyncio
    async def test_resolve_document(self, fake_session):
        """Test the resolved document is parsed."""
        fake_session.add("GET", f"https://{PLC}/{DID}", json_body=DOCUMENT)

        document = await plc_resolve_did(fake_session, PLC, DID)

        assert document.id == DID
        assert document.also_known_as == DOCUMENT["alsoKnownAs"]

    @pytest.mark.asyncio
    async def test_plc_query(self, fake_session):
        """Test plc_query reports PDS endpoints and stripped handles."""
        fake_session.add("GET", f"https://{PLC}/{DID}", json_body=DOCUMENT)

        pds, handles = await plc_query(fake_session, PLC, DID)

        assert pds == ["https://pds.example"]
        assert handles == ["alice.example"]

    @pytest.mark.asyncio
    async def test_not_found(self, fake_session):
        """Test non-200 responses raise TransportError."""
        fake_session.add("GET", f"https://{PLC}/{DID}", status=404, text_body="not found")

        with pytest.raises(TransportError) as excinfo:
            await plc_resolve_did(fake_session, PLC, DID)
        assert excinfo.value.url == f"https://{PLC}/{DID}"

    @pytest.mark.asyncio
    async def test_connection_error(self, fake_session):
        """Test connection failures raise TransportError."""
        fake_session.add(
            "GET", f"https://{PLC}/{DID}", error=ClientConnectionError("refused")
        )

        with pytest.raises(TransportError):
            await plc_resolve_did(fake_session, PLC, DID)

    @pytest.mark.asyncio
    async def test_timeout(self, fake_session):
        """Test timeouts raise TransportError."""
        fake_session.add("GET", f"https://{PLC}/{DID}", error=asyncio.TimeoutError())

        with pytest.raises(TransportError):
            await plc_resolve_did(fake_session, PLC, DID)

    @pytest.mark.asyncio
    async def test_invalid_document(self, fake_session):
        """Test documents that do not validate raise TransportError."""
        fake_session.add("GET", f"https://{PLC}/{DID}", json_body={"alsoKnownAs": "nope"})

        with pytest.raises(TransportError):
            await plc_resolve_did(fake_session, PLC, DID)

    @pytest.mark.asyncio
    async def test_session_timeout_not_overridden(self, fake_session):
        """Test calls without a timeout leave the session default alone."""
        fake_session.add("GET", f"https://{PLC}/{DID}", json_body=DOCUMENT)

        await plc_resolve_did(fake_session, PLC, DID)

        assert "timeout" not in fake_session.calls_to("GET", f"https://{PLC}/{DID}")[0]


class TestDocumentData:
    """Test suite for the document data view."""

    @pytest.mark.asyncio
    async def test_did_plc_data(self, fake_session):
        """Test the data view is returned as a plain tree."""
        data = {
            "did": DID,
            "rotationKeys": ["did:key:zA"],
            "verificationMethods": {"atproto": "did:key:zB"},
            "alsoKnownAs": ["at://alice.example"],
            "services": {},
        }
        fake_session.add("GET", f"https://{PLC}/{DID}/data", json_body=data)

        assert await did_plc_data(fake_session, PLC, DID) == data

    @pytest.mark.asyncio
    async def test_did_plc_data_not_an_object(self, fake_session):
        """Test non-object bodies raise TransportError."""
        fake_session.add("GET", f"https://{PLC}/{DID}/data", json_body=["x"])

        with pytest.raises(TransportError):
            await did_plc_data(fake_session, PLC, DID)


class TestAuditLog:
    """Test suite for audit log retrieval."""

    @pytest.mark.asyncio
    async def test_audit_log(self, fake_session, audit_chain):
        """Test audit log entries are parsed in served order."""
        _, _, raw = audit_chain
        fake_session.add("GET", f"https://{PLC}/{DID}/log/audit", json_body=raw)

        entries = await did_plc_audit_log(fake_session, PLC, DID)

        assert [entry.cid for entry in entries] == [entry["cid"] for entry in raw]
        assert entries[0].created_at > entries[1].created_at
        assert entries[0].nullified is False

    @pytest.mark.asyncio
    async def test_audit_log_invalid(self, fake_session):
        """Test malformed logs raise TransportError."""
        fake_session.add(
            "GET", f"https://{PLC}/{DID}/log/audit", json_body=[{"cid": "bafy"}]
        )

        with pytest.raises(TransportError):
            await did_plc_audit_log(fake_session, PLC, DID)


class TestSubmitOperation:
    """Test suite for operation submission."""

    @pytest.mark.asyncio
    async def test_submit_success(self, fake_session):
        """Test 2xx responses are success and the operation is posted as JSON."""
        fake_session.add("POST", f"https://{PLC}/{DID}", status=200, text_body="")
        operation = {"type": "plc_operation", "prev": "bafyreitip", "sig": "abc"}

        await submit_operation(fake_session, PLC, DID, operation)

        assert fake_session.calls_to("POST", f"https://{PLC}/{DID}")[0]["json"] == operation

    @pytest.mark.asyncio
    async def test_submit_conflict_status(self, fake_session):
        """Test 409 responses raise ChainConflict."""
        fake_session.add("POST", f"https://{PLC}/{DID}", status=409, text_body="conflict")

        with pytest.raises(ChainConflict):
            await submit_operation(fake_session, PLC, DID, {})

    @pytest.mark.asyncio
    async def test_submit_stale_prev(self, fake_session):
        """Test 400 responses about prev raise ChainConflict."""
        fake_session.add(
            "POST",
            f"https://{PLC}/{DID}",
            status=400,
            text_body='{"message":"Proposed prev does not match the most recent operation"}',
        )

        with pytest.raises(ChainConflict) as excinfo:
            await submit_operation(fake_session, PLC, DID, {})
        assert excinfo.value.status == 400
        assert "Proposed prev" in excinfo.value.body

    @pytest.mark.asyncio
    async def test_submit_rejected(self, fake_session):
        """Test other failures raise OperationRejected but not ChainConflict."""
        fake_session.add(
            "POST",
            f"https://{PLC}/{DID}",
            status=400,
            text_body='{"message":"Invalid signature"}',
        )

        with pytest.raises(OperationRejected) as excinfo:
            await submit_operation(fake_session, PLC, DID, {})
        assert not isinstance(excinfo.value, ChainConflict)

    @pytest.mark.asyncio
    async def test_submit_connection_error(self, fake_session):
        """Test connection failures raise TransportError."""
        fake_session.add(
            "POST", f"https://{PLC}/{DID}", error=ClientConnectionError("reset")
        )

        with pytest.raises(TransportError):
            await submit_operation(fake_session, PLC, DID, {})
