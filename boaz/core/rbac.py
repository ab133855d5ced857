from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from boaz.core.auth import AuthUser, get_current_user


def require_roles(*roles: str) -> Callable[[AuthUser], AuthUser]:
    async def checker(user: AuthUser = Depends(get_current_user)) -> AuthUser:
        if not any(role in user.roles for role in roles):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
        return user

    return checker
