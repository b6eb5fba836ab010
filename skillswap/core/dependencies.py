import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from skillswap.core.security import decode_access_token
from skillswap.db.firebase_ops import get_firestore_ops_instance, FirestoreBaseModel
from skillswap.models.schemas import User

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
    """
    Resolve the bearer token to an active user, or fail with 401/403.
    """
    user_id_from_token = decode_access_token(token)
    if not user_id_from_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()
    current_user = firestore_ops.get(collection_name="users", document_id=user_id_from_token, pydantic_model=User)
    if not current_user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authenticated user not found")

    if not current_user.is_active or current_user.account_status != "active":
        logger.info(f"Rejected request from inactive user {current_user.id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is not active")

    return current_user


def require_roles(*roles: str):
    """
    Dependency factory: `Depends(require_roles("client"))` admits only the listed roles.
    """
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires role: {', '.join(roles)}",
            )
        return current_user

    return role_checker
