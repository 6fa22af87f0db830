from uuid import UUID

from fastapi import Header, HTTPException


async def get_current_user_id(x_user_id: str = Header(default="")) -> UUID:
    """Identity of the caller, as established by the upstream auth layer."""
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Missing or invalid user identity")
