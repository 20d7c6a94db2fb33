from fastapi import Header, HTTPException, status


def get_current_user_id(x_user_id: str = Header(None, alias="X-User-Id")) -> str:
    """Caller identity, as asserted by the upstream authentication gateway"""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id
