"""
Data Models

This package defines the Pydantic models tandem uses at its network boundaries.
Operations themselves are handled as JSON trees so that patches and canonical
encoding see exactly what the directory served; these models type everything
around them.

Key Models:
- plc.py: Directory shapes (resolved DID documents, document data, audit log)
- identity.py: The verified identity produced by handle resolution

Relationships:
- A DidDocument lists handles (alsoKnownAs) and services for one DID
- DocumentData is the mutable projection that operations carry forward
- AuditEntry wraps a signed operation with its CID and creation time
- ResolvedIdentity is the converged (did, pds, handles) triple
"""
