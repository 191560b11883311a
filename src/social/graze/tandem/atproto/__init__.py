"""
AT Protocol Integration

This package provides the DID-PLC building blocks and the clients for the
services involved in changing an identity.

Key Components:
- crypto.py: Key generation, did:key encoding, ECDSA signing and verification
- patch.py: JSON patch directives for documents and operations
- plc.py: PLC directory client (documents, audit log, submission)
- operation.py: Chain tip selection, operation building, signing and CIDs
- pds.py: PDS XRPC calls (sessions, PLC operation signing, account creation)

Supported curves are P-256 and secp256k1. Operations are canonicalized with
DAG-CBOR before signing, the same encoding the directory hashes into CIDs.
"""
