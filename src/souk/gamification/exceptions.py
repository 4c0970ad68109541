"""Gamification domain errors (admin surface only; engine paths never raise)."""


class GamificationError(Exception):
    """Base class for gamification errors."""


class NotFoundError(GamificationError):
    """Target row does not exist."""

    def __init__(self, kind: str, ident: object) -> None:
        super().__init__(f"{kind} {ident} not found")
        self.kind = kind
        self.ident = ident
