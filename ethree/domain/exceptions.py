

class EthreeError(Exception):
    """
    Base exception for all domain-level errors
    inside the Ethree order engine.
    """

    status_code = 500
    client_message: str | None = None

    @property
    def message(self) -> str:
        if self.client_message is not None:
            return self.client_message
        return str(self)


class InvalidInputError(EthreeError):
    """Raised for a malformed date, time, location or cart."""

    status_code = 400


class UserNotFoundError(EthreeError):
    """Raised when checkout is attempted for a user with no profile row."""

    status_code = 404


class OrderNotFoundError(EthreeError):
    """Raised when a callback references a transaction id with no order row."""

    status_code = 404


class StorageError(EthreeError):
    """Raised when a record store operation fails."""

    status_code = 500
    client_message = "Unable to process the order right now. Please try again."


class GatewayUnavailableError(EthreeError):
    """Raised on a transport failure talking to the payment gateway."""

    status_code = 502
    client_message = "Payment gateway is unavailable. Please try again."


class GatewayRejectedError(EthreeError):
    """
    Raised when the gateway answered but declined the initiation.
    The message carries the gateway's stated reason.
    """

    status_code = 502


class AuthenticationFailureError(EthreeError):
    """Raised when a callback hash does not match the recomputed digest."""

    status_code = 400
    client_message = "Hash Validation Failed"


class InvalidStateTransitionError(EthreeError):
    """
    Raised when an illegal order state transition is attempted.
    """

    status_code = 409

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)
