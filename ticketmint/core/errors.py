# ticketmint/core/errors.py
# SPDX-License-Identifier: Apache-2.0
"""Error taxonomy for the ticket minting workflow.

Error code ranges:
  1xxx: Input (parameters, identities)
  2xxx: Network / storage
  3xxx: Funds
  4xxx: Market record
  5xxx: Transactions
"""

from __future__ import annotations


class TicketMintError(Exception):
    """Base error. `logs` holds program log lines verbatim, when the ledger supplied any."""

    def __init__(
        self,
        code: int,
        message: str,
        logs: list[str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.logs = list(logs or [])
        super().__init__(message)


# --- 1xxx: Input ---

class MissingParameter(TicketMintError):
    def __init__(self, *names: str) -> None:
        self.names = names
        super().__init__(1001, f"Missing required parameters: {', '.join(names)}")


class InvalidIdentity(TicketMintError):
    def __init__(self, value: object, reason: str = "not a valid public key") -> None:
        self.value = value
        super().__init__(1002, f"Invalid identity {value!r}: {reason}")


class InvalidParameter(TicketMintError, ValueError):
    """A parameter is present but outside the range the program can store."""

    def __init__(self, name: str, value: object, reason: str) -> None:
        self.name = name
        self.value = value
        super().__init__(1003, f"Invalid {name} {value!r}: {reason}")


# --- 2xxx: Network / storage ---

class NetworkExhausted(TicketMintError):
    def __init__(self, endpoints: list[str], last_error: BaseException | None) -> None:
        self.endpoints = endpoints
        self.last_error = last_error
        super().__init__(
            2001,
            f"All RPC endpoints failed ({len(endpoints)} tried). Last error: {last_error}",
        )


class UploadFailed(TicketMintError):
    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        self.detail = detail
        super().__init__(2002, f"Upload of {name} failed: {detail}")


# --- 3xxx: Funds ---

class InsufficientFunds(TicketMintError):
    def __init__(self, current: int, required: int) -> None:
        self.current = current
        self.required = required
        super().__init__(
            3001,
            f"Insufficient balance: {current} lamports (minimum: {required} lamports)",
        )


# --- 4xxx: Market record ---

class RecordNotFound(TicketMintError):
    def __init__(self, address: object) -> None:
        self.address = address
        super().__init__(4001, f"No ticket account found at {address}")


class ResaleNotAllowed(TicketMintError):
    def __init__(self, address: object) -> None:
        self.address = address
        super().__init__(4002, f"Resale is not allowed for ticket {address}")


class MarkupExceeded(TicketMintError):
    def __init__(self, price: int, max_allowed: int, max_markup_pct: int) -> None:
        self.price = price
        self.max_allowed = max_allowed
        self.max_markup_pct = max_markup_pct
        super().__init__(
            4003,
            f"Price {price} lamports exceeds maximum allowed price of "
            f"{max_allowed} lamports ({max_markup_pct}% markup)",
        )


# --- 5xxx: Transactions ---

class TransactionRejected(TicketMintError):
    def __init__(self, message: str, logs: list[str] | None = None, code: int = 5000) -> None:
        super().__init__(code, message, logs)


class MintingFailed(TransactionRejected):
    def __init__(self, message: str, logs: list[str] | None = None) -> None:
        super().__init__(f"Asset minting failed: {message}", logs, 5001)


class RegistrationFailed(TransactionRejected):
    def __init__(self, message: str, logs: list[str] | None = None, mint: object = None) -> None:
        self.mint = mint
        super().__init__(f"Market record registration failed: {message}", logs, 5002)


class ListingFailed(TransactionRejected):
    def __init__(self, message: str, logs: list[str] | None = None) -> None:
        super().__init__(f"Listing failed: {message}", logs, 5003)
