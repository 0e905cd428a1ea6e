# barbershop/deps.py

from fastapi import Depends, HTTPException

from .auth import get_current_user

STAFF_ROLES = ("admin", "barber")


def require_role(user: dict, *roles: str):
    if user["role"] not in roles:
        raise HTTPException(status_code=403, detail="Forbidden")


def get_staff_user(current_user: dict = Depends(get_current_user)) -> dict:
    require_role(current_user, *STAFF_ROLES)
    return current_user


def get_admin_user(current_user: dict = Depends(get_current_user)) -> dict:
    require_role(current_user, "admin")
    return current_user
