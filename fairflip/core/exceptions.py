"""Error taxonomy shared by the fairness core and the match layer."""


class FairFlipError(Exception):
    """Base class for all recoverable FairFlip errors."""


class MalformedInput(FairFlipError):
    """Missing or badly shaped seed, nonce, digest or outcome."""


class PrimitiveUnavailable(FairFlipError):
    """The SHA-256 primitive cannot be used. Fatal at startup."""


class SequenceMisuse(FairFlipError):
    """A nonce was reused, skipped, or reserved twice for the same sequence."""

    def __init__(self, sequence_id: str, message: str):
        super().__init__(f"sequence {sequence_id}: {message}")
        self.sequence_id = sequence_id


class InvalidFlipState(FairFlipError):
    """A commit-reveal step was attempted out of order."""


class MatchNotFound(FairFlipError):
    def __init__(self, match_id: int):
        super().__init__(f"Match {match_id} not found")
        self.match_id = match_id


class InvalidMatchAction(FairFlipError):
    """The caller is not allowed to do this to the match right now."""


class InsufficientPoints(FairFlipError):
    def __init__(self, username: str, needed: int, available: int):
        super().__init__("Insufficient points!")
        self.username = username
        self.needed = needed
        self.available = available


class IdentityError(FairFlipError):
    """Identity verification failure with the HTTP status it maps to."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code
