from typing import List

from pydantic import BaseModel, Field


class ResolvedIdentity(BaseModel):
    """Verified identity for a handle or DID.

    Exactly one DID and one PDS endpoint, with every handle that was
    discovered and cross-checked while resolving.
    """

    did: str
    pds: str
    handles: List[str] = Field(min_length=1)
