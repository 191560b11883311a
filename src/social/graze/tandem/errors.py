"""Error types raised by tandem.

Every failure the core can surface is a subclass of ``TandemError``. The
families line up with the layers that raise them:

- ``InputError``: malformed handles and DIDs, rejected before any network call
- ``ResolutionError``: handle/DID cross-checks that did not converge
- ``ChainError``: problems with a DID's operation log
- ``KeyCodecError``: key decoding, curve and signature failures
- ``PatchApplicationError``: a JSON patch directive could not be applied
- ``TransportError``: network failures and rejected submissions
- ``PdsError``: unexpected responses from a personal data server

Nothing in the core retries. Errors carry the offending subject, DID, URL or
status so that the caller can explain the failure.
"""

from typing import Any, Iterable, List, Optional, Sequence


class TandemError(Exception):
    """Base class for all tandem errors."""


class InputError(TandemError):
    pass


class InvalidHandle(InputError):
    def __init__(self, handle: str) -> None:
        super().__init__(f"invalid handle: {handle!r}")
        self.handle = handle


class InvalidDID(InputError):
    def __init__(self, did: str) -> None:
        super().__init__(f"invalid DID: {did!r}")
        self.did = did


class ResolutionError(TandemError):
    def __init__(self, message: str, subject: str) -> None:
        super().__init__(message)
        self.subject = subject


class ResolutionDepthExceeded(ResolutionError):
    def __init__(self, subject: str, max_iterations: int) -> None:
        super().__init__(
            f"resolution of {subject} exceeded max iteration depth {max_iterations}",
            subject,
        )
        self.max_iterations = max_iterations


class AmbiguousHandle(ResolutionError):
    def __init__(self, handle: str, dids: Iterable[str]) -> None:
        self.dids: List[str] = sorted(dids)
        super().__init__(
            f"multiple DNS records found for handle {handle}: {', '.join(self.dids)}",
            handle,
        )
        self.handle = handle


class MultipleDIDs(ResolutionError):
    def __init__(self, subject: str, dids: Iterable[str]) -> None:
        self.dids: List[str] = sorted(dids)
        super().__init__(
            f"multiple DIDs found for subject {subject}: {', '.join(self.dids)}",
            subject,
        )


class MultiplePDS(ResolutionError):
    def __init__(self, subject: str, endpoints: Iterable[str]) -> None:
        self.endpoints: List[str] = sorted(endpoints)
        super().__init__(
            f"multiple PDSs found for subject {subject}: {', '.join(self.endpoints)}",
            subject,
        )


class NoHandlesFound(ResolutionError):
    def __init__(self, subject: str) -> None:
        super().__init__(f"no handles found for subject {subject}", subject)


class NoDIDsFound(ResolutionError):
    def __init__(self, subject: str) -> None:
        super().__init__(f"no DIDs found for subject {subject}", subject)


class NoPDSFound(ResolutionError):
    def __init__(self, subject: str) -> None:
        super().__init__(f"no PDSs found for subject {subject}", subject)


class ChainError(TandemError):
    def __init__(self, message: str, did: Optional[str] = None) -> None:
        super().__init__(message)
        self.did = did


class NoOperationsFound(ChainError):
    def __init__(self, did: Optional[str] = None) -> None:
        super().__init__(f"no operations found for {did or 'DID'}", did)


class ChainLinkageError(ChainError):
    pass


class DidTombstoned(ChainError):
    def __init__(self, did: Optional[str] = None) -> None:
        super().__init__(f"{did or 'DID'} has been tombstoned", did)


class KeyCodecError(TandemError):
    pass


class UnsupportedCurve(KeyCodecError):
    def __init__(self, curve: Any) -> None:
        super().__init__(f"unsupported curve: {curve!r}")
        self.curve = curve


class KeyDecodingError(KeyCodecError):
    pass


class CurveMismatch(KeyCodecError):
    def __init__(self, expected: Any, actual: Any) -> None:
        super().__init__(f"key curve {actual} does not match requested curve {expected}")
        self.expected = expected
        self.actual = actual


class SignatureError(KeyCodecError):
    pass


class PatchApplicationError(TandemError):
    def __init__(self, message: str, directives: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.directives = list(directives)


class TransportError(TandemError):
    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class OperationRejected(TransportError):
    def __init__(self, url: str, status: int, body: Optional[str] = None) -> None:
        super().__init__(f"operation rejected by {url}: response {status}", url)
        self.status = status
        self.body = body


class ChainConflict(OperationRejected):
    """The directory's chain tip moved since the operation was built.

    Callers may fetch the new tip and rebuild the operation from scratch.
    """


class PdsError(TandemError):
    def __init__(self, message: str, response: Any = None) -> None:
        super().__init__(message)
        self.response = response
