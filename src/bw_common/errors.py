"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/User
  2xxx: Wallet / ledger
  3xxx: Catalog (games, markets)
  4xxx: Bets
  5xxx: Payments
  9xxx: System
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


# --- 1xxx: Auth/User ---

class UsernameExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Username already exists", 409)


class EmailExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "Email already exists", 409)


class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid username or password", 401)


class AccountDisabledError(AppError):
    def __init__(self) -> None:
        super().__init__(1004, "Account is disabled", 403)


class InvalidRefreshTokenError(AppError):
    def __init__(self) -> None:
        super().__init__(1005, "Refresh token is invalid or expired", 401)


class AdminRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1006, "Admin privileges required", 403)


class NotAuthenticatedError(AppError):
    def __init__(self) -> None:
        super().__init__(1007, "Missing, invalid or expired access token", 401)


# --- 2xxx: Wallet ---

class InsufficientFundsError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            2001,
            f"Insufficient funds: required {required} cents, available {available} cents",
            422,
        )


class WalletNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(2002, f"Wallet not found for user {user_id}", 404)


class DuplicateExternalRefError(AppError):
    def __init__(self, external_ref: str) -> None:
        super().__init__(2003, f"Ledger entry already recorded for reference {external_ref}", 409)


# --- 3xxx: Catalog ---

class GameNotFoundError(AppError):
    def __init__(self, game_id: str) -> None:
        super().__init__(3001, f"Game not found: {game_id}", 404)


class GameNotOpenError(AppError):
    def __init__(self, game_id: str, status: str) -> None:
        super().__init__(3002, f"Game {game_id} is not open for betting (status={status})", 422)


class MarketOptionNotFoundError(AppError):
    def __init__(self, option_id: str) -> None:
        super().__init__(3003, f"Market option not found: {option_id}", 404)


# --- 4xxx: Bets ---

class InvalidStakeError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, f"Invalid stake: {detail}", 422)


class InvalidOddsError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4002, f"Invalid odds: {detail}", 422)


class NoLegsError(AppError):
    def __init__(self) -> None:
        super().__init__(4003, "A bet needs at least one selection", 422)


class BetNotFoundError(AppError):
    def __init__(self, bet_id: str) -> None:
        super().__init__(4004, f"Bet not found: {bet_id}", 404)


class AlreadySettledError(AppError):
    def __init__(self, bet_id: str, status: str) -> None:
        super().__init__(4005, f"Bet {bet_id} is already settled (status={status})", 409)


class InvalidLegsError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4006, f"Invalid selections: {detail}", 422)


# --- 5xxx: Payments ---

class UnknownPaymentError(AppError):
    def __init__(self, gateway_ref: str) -> None:
        super().__init__(5001, f"Unknown payment reference: {gateway_ref}", 404)


class InvalidPaymentAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(5002, f"Invalid payment amount: {detail}", 422)


class PaymentGatewayError(AppError):
    def __init__(self, gateway: str, detail: str) -> None:
        super().__init__(5003, f"{gateway} gateway error: {detail}", 502)


class PaymentMismatchError(AppError):
    def __init__(self, gateway_ref: str, detail: str) -> None:
        super().__init__(5004, f"Confirmation does not match payment {gateway_ref}: {detail}", 422)


class InvalidWebhookTokenError(AppError):
    def __init__(self) -> None:
        super().__init__(5005, "Webhook token is missing or invalid", 401)


class InvalidPhoneNumberError(AppError):
    def __init__(self, phone_number: str) -> None:
        super().__init__(
            5006,
            f"Invalid Kenyan phone number {phone_number!r}, expected e.g. 254700000000",
            422,
        )


class MalformedCallbackError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(5007, f"Malformed gateway callback: {detail}", 400)


class PaymentOutcomeUnknownError(AppError):
    """The request may have reached the gateway; only its result callback can settle it."""

    def __init__(self, gateway: str, detail: str) -> None:
        super().__init__(5008, f"{gateway} did not answer, outcome unknown: {detail}", 504)


# --- 9xxx: System ---

class RateLimitError(AppError):
    def __init__(self) -> None:
        super().__init__(9001, "Rate limit exceeded", 429)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class StoreUnavailableError(AppError):
    """Transient database failure; the whole operation is safe to retry."""

    def __init__(self, detail: str = "Store temporarily unavailable, retry later") -> None:
        super().__init__(9003, detail, 503)
