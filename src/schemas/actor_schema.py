"""Caller identity as a closed set of actor variants.

Permission code dispatches on the variant type instead of comparing
role strings. ``actor_from_claims`` converts the ``{id, role,
mechanic_id?, customer_id?}`` shape produced by the auth layer.
"""

from dataclasses import dataclass
from typing import Any, Union

from src.errors import ForbiddenError


@dataclass(frozen=True)
class AdminActor:
    user_id: int


@dataclass(frozen=True)
class OwnerActor:
    """Garage owner. Holds the same scheduling privileges as an admin."""
    user_id: int


@dataclass(frozen=True)
class StaffActor:
    user_id: int


@dataclass(frozen=True)
class MechanicActor:
    user_id: int
    mechanic_id: int


@dataclass(frozen=True)
class CustomerActor:
    user_id: int
    customer_id: int


Actor = Union[AdminActor, OwnerActor, StaffActor, MechanicActor, CustomerActor]

STAFF_ACTOR_TYPES = (AdminActor, OwnerActor, StaffActor)


def is_staff(actor: Actor) -> bool:
    """Admin, owner and staff share the back-office privileges."""
    return isinstance(actor, STAFF_ACTOR_TYPES)


def describe_actor(actor: Actor) -> str:
    """Short label for log lines."""
    if isinstance(actor, MechanicActor):
        return f"mechanic:{actor.mechanic_id}"
    if isinstance(actor, CustomerActor):
        return f"customer:{actor.customer_id}"
    return f"{type(actor).__name__.removesuffix('Actor').lower()}:{actor.user_id}"


def actor_from_claims(claims: dict[str, Any]) -> Actor:
    """Build an actor from authenticated user claims.

    Raises:
        ForbiddenError: If the role is unknown or lacks its linked id.
    """
    role = str(claims.get("role", "")).lower()
    user_id = claims.get("id")
    if user_id is None:
        raise ForbiddenError("Authenticated user id is missing", field="id")

    if role == "admin":
        return AdminActor(user_id=int(user_id))
    if role == "owner":
        return OwnerActor(user_id=int(user_id))
    if role == "staff":
        return StaffActor(user_id=int(user_id))
    if role == "mechanic":
        mechanic_id = claims.get("mechanic_id")
        if mechanic_id is None:
            raise ForbiddenError(
                "Mechanic account is not linked to a mechanic profile",
                field="mechanic_id",
                ref=user_id,
            )
        return MechanicActor(user_id=int(user_id), mechanic_id=int(mechanic_id))
    if role == "customer":
        customer_id = claims.get("customer_id")
        if customer_id is None:
            raise ForbiddenError(
                "Customer account is not linked to a customer profile",
                field="customer_id",
                ref=user_id,
            )
        return CustomerActor(user_id=int(user_id), customer_id=int(customer_id))

    raise ForbiddenError(f"Unknown role {role!r}", field="role", ref=user_id)
