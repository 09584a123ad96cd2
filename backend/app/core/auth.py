"""Authentication utilities.

Resolves the caller's user id. Until real auth lands the id comes from the
``X-User-Id`` header and defaults to the guest user (id=1). Whatever id is
returned here is the only tenancy boundary the services see: they scope
every lookup through it.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

# Default guest user - used when no authentication is required
DEFAULT_USER_ID = 1


def get_auth_user(
    x_user_id: Annotated[str | None, Header()] = None,
) -> int:
    """Get the current authenticated user ID for HTTP requests.

    Args:
        x_user_id: Value of the ``X-User-Id`` header (injected by FastAPI)

    Returns:
        User ID (int)

    Raises:
        HTTPException: 401 when the header is present but not a positive integer
    """
    if x_user_id is None:
        return DEFAULT_USER_ID
    try:
        user_id = int(x_user_id)
    except ValueError:
        user_id = 0
    if user_id < 1:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )
    return user_id


# Type alias for FastAPI dependency
CurrentUserDep = Annotated[int, Depends(get_auth_user)]
