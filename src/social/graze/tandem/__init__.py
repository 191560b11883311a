"""
tandem - DID-PLC identity control chain tooling

This package resolves AT Protocol identities and builds the signed operations
that change which keys and services are authoritative for a did:plc DID.

Key Components:
- resolve: Verified handle and DID resolution across the directory, DNS and HTTPS
- atproto: Key encoding and signing, document patches, the PLC directory and
  PDS clients, and operation chain construction
- actions: The identity actions (install key, create account, migrate, append handle)
- app: Configuration and the command line interface
- model: Pydantic models for directory data and resolved identities

Architecture Overview:
1. Resolution:
   - A handle or DID is resolved and cross-checked into one DID, one PDS and
     the handles that vouch for it

2. Operation Building:
   - The chain tip is read from the directory's audit log
   - The tip is cloned and patched into the next state
   - The DAG-CBOR encoding of that state is signed with a rotation key

3. Submission:
   - The signed operation is posted to the directory (or the PDS) once; a stale
     ``prev`` surfaces as a ChainConflict for the caller to handle
"""
