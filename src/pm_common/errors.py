"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Authorization
  3xxx: Market
  4xxx: Trade
  5xxx: Settlement
  9xxx: System

http_status is a hint for whichever request handler surfaces the error.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Authorization ---

class UnauthorizedError(AppError):
    def __init__(self, actor_id: str, market_id: str) -> None:
        super().__init__(
            1001, f"Actor {actor_id} may not resolve or annul market {market_id}", 403
        )


# --- 3xxx: Market ---

class MarketNotFoundError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3001, f"Market not found: {market_id}", 404)


class MarketNotOpenError(AppError):
    def __init__(self, market_id: str, status: str) -> None:
        super().__init__(3002, f"Market {market_id} is not open (status={status})", 422)


class AlreadyFinalError(AppError):
    def __init__(self, market_id: str, status: str) -> None:
        super().__init__(3003, f"Market {market_id} is already final (status={status})", 409)


class OutcomeNotFoundError(AppError):
    def __init__(self, market_id: str, outcome_id: str) -> None:
        super().__init__(3004, f"Outcome {outcome_id} not found in market {market_id}", 404)


class InvalidMarketDefinitionError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3005, f"Invalid market definition: {detail}", 422)


class UnsupportedMakerKindError(AppError):
    def __init__(self, maker_kind: str) -> None:
        super().__init__(3006, f"Unsupported market maker kind: {maker_kind}", 422)


class MarketNotFinalError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3007, f"Market {market_id} has not been resolved or annulled", 422)


# --- 4xxx: Trade ---

class InvalidTradeInputError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, f"Invalid trade input: {detail}", 422)


class InsufficientLiquidityError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4002, f"Insufficient liquidity: {detail}", 422)


class ConcurrentModificationError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(
            4003, f"Reserves of market {market_id} changed during the trade", 409
        )


# --- 5xxx: Settlement ---

class DuplicateSettlementError(AppError):
    def __init__(self, market_id: str, user_id: str | None = None) -> None:
        if user_id is None:
            message = f"Market {market_id} is already settled"
        else:
            message = f"Payout already exists for user {user_id} in market {market_id}"
        super().__init__(5001, message, 409)


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
