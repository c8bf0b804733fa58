# ethree/domain/state_machine.py

from enum import Enum
from typing import Dict, Set

from ethree.domain.exceptions import InvalidStateTransitionError


class OrderStatus(str, Enum):
    PLACED = "placed"
    SUCCESS = "success"
    FAILED = "failed"


class OrderStateMachine:
    """
    Central lifecycle controller for order transitions.
    Orders start as placed and settle exactly once.
    """

    _ALLOWED_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
        OrderStatus.PLACED: {
            OrderStatus.SUCCESS,
            OrderStatus.FAILED,
        },
        OrderStatus.SUCCESS: set(),
        OrderStatus.FAILED: set(),
    }

    @classmethod
    def can_transition(
        cls,
        from_status: OrderStatus,
        to_status: OrderStatus,
    ) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        from_status: OrderStatus,
        to_status: OrderStatus,
    ) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_redelivery(
        cls,
        from_status: OrderStatus,
        to_status: OrderStatus,
    ) -> bool:
        """
        Returns True when a settled order receives its own status again.
        Gateways redeliver callbacks, so this is a no-op rather than an error.
        """
        return cls.is_terminal(from_status) and from_status == to_status

    @classmethod
    def is_terminal(cls, status: OrderStatus) -> bool:
        """
        Returns True if the state is terminal (no further transitions allowed).
        """
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def get_allowed_transitions(
        cls, status: OrderStatus
    ) -> Set[OrderStatus]:
        cls._ensure_valid_status(status)
        return cls._ALLOWED_TRANSITIONS.get(status, set())

    @staticmethod
    def _ensure_valid_status(status: OrderStatus) -> None:
        if not isinstance(status, OrderStatus):
            raise TypeError(
                f"Expected OrderStatus, got {type(status)}"
            )
