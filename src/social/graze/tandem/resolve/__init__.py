"""
Identity Resolution

This package resolves AT Protocol identifiers (DIDs, handles) into a single
verified identity, cross-checking the DID document against the handle's own
DNS and HTTPS proofs.

Key Components:
- handle.py: Input validation, per-source lookups and the resolution loop
- __main__.py: CLI interface for resolution

Resolution Types:
1. Handle Resolution
   - DNS-based resolution via TXT records (_atproto.{handle})
   - HTTP-based resolution via well-known endpoints (.well-known/atproto-did)

2. DID Resolution
   - did:plc method resolution via PLC directory
   - did:web method resolution via well-known endpoints

The resolution flow follows these steps:
1. Validate the input and seed the DID or handle frontier
2. Resolve one pending DID and one pending handle per iteration
3. Feed discovered handles and DIDs back into the frontiers
4. Stop when both frontiers are exhausted, then require exactly one DID,
   exactly one PDS and at least one handle

Any single source may fail without failing resolution. Sources that disagree
(several DIDs, several PDSs, ambiguous DNS records) always fail it.
"""
