"""
Identity context supplied by the upstream auth layer.

Credentials are verified before requests reach this service; the order
engine only reads the resolved identity from trusted headers.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str = "customer"
    location_hint: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_identity(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_user_location: str | None = Header(default=None),
) -> Identity:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No authenticated user, authorization denied",
        )
    return Identity(
        user_id=x_user_id,
        role=(x_user_role or "customer").lower(),
        location_hint=x_user_location,
    )


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Admin only.",
        )
    return identity
