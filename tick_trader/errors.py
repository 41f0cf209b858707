from __future__ import annotations


class TickTraderError(Exception):
    pass


class InsufficientData(TickTraderError):
    def __init__(self, symbol: str, have: int, need: int) -> None:
        super().__init__(f"{symbol}: {have} price points, need {need}")
        self.symbol = symbol
        self.have = have
        self.need = need


class InvalidPrice(TickTraderError):
    pass


class RiskRejected(TickTraderError):
    def __init__(self, symbol: str, warnings: list[str]) -> None:
        super().__init__(f"{symbol}: " + "; ".join(warnings))
        self.symbol = symbol
        self.warnings = warnings


class ConflictRejected(TickTraderError):
    def __init__(self, symbol: str, conflicting_ids: list[str]) -> None:
        super().__init__(f"{symbol}: outranked by {', '.join(conflicting_ids)}")
        self.symbol = symbol
        self.conflicting_ids = conflicting_ids


class PersistenceFailure(TickTraderError):
    pass


class NotificationFailure(TickTraderError):
    pass


class FeedGap(TickTraderError):
    pass


class InvariantViolation(AssertionError):
    pass
