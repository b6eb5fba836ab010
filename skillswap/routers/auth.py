import hashlib
import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, HTTPException, Depends, status
from fastapi.security import OAuth2PasswordRequestForm

from skillswap.core.config import settings
from skillswap.core.dependencies import get_current_user
from skillswap.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    generate_one_time_token,
    Token,
)
from skillswap.db.firebase_ops import get_firestore_ops_instance, FirestoreBaseModel, generate_object_id, as_utc_naive
from skillswap.models.schemas import (
    UserCreate,
    User,
    EmailVerification,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    ChangePasswordRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _token_digest(token: str) -> str:
    # Only a digest of one-time tokens is stored
    return hashlib.sha256(token.encode()).hexdigest()


@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
async def register_user(user_in: UserCreate):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    if user_in.role == "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin accounts can only be created by an administrator")

    # Check if user with the same email exists
    existing_user_by_email = firestore_ops.query(collection_name="users", field="email", operator="==", value=user_in.email)
    if existing_user_by_email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User with this email already exists")

    user_id = generate_object_id()
    verification_token = generate_one_time_token()

    user_record_to_save = user_in.model_dump(exclude={"password"})
    user_record_to_save.update({
        "hashed_password": get_password_hash(user_in.password),
        "is_verified": False,
        "account_status": "active",
        "is_active": True,
        "verification_token": _token_digest(verification_token),
    })

    saved_user_id = firestore_ops.save(collection_name="users", data_model=user_record_to_save, document_id=user_id)
    if not saved_user_id:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not create user")

    # Every client/freelancer gets a role profile keyed by the user id
    if user_in.role == "client":
        firestore_ops.save(collection_name="client_profiles", data_model={"user_id": user_id}, document_id=user_id)
    else:
        firestore_ops.save(collection_name="freelancer_profiles", data_model={"user_id": user_id}, document_id=user_id)

    logger.info(f"Registered {user_in.role} {user_id}")
    if not settings.is_production():
        # No mail delivery; surface the token in development so the flow can be exercised
        logger.info(f"Email verification token for {user_in.email}: {verification_token}")

    return firestore_ops.get(collection_name="users", document_id=user_id, pydantic_model=User)


@router.post("/login", response_model=Token)
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    # The OAuth2 form calls it "username"; we log in by e-mail
    users_found = firestore_ops.query(collection_name="users", field="email", operator="==", value=form_data.username)

    if not users_found or not verify_password(form_data.password, users_found[0].get("hashed_password") or ""):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_data = users_found[0]

    if user_data.get("account_status") == "suspended":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account has been suspended. Please contact support.")
    if user_data.get("account_status") == "deactivated" or user_data.get("is_active") is False:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account has been deactivated.")

    firestore_ops.update(collection_name="users", document_id=user_data["id"], updates={"last_login": datetime.utcnow()})

    access_token = create_access_token(data={"sub": user_data["id"], "role": user_data.get("role")})
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me", response_model=User)
async def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/logout")
async def logout(current_user: User = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy
    return {"message": "Logout successful"}


@router.post("/verify-email")
async def verify_email(payload: EmailVerification):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    users_found = firestore_ops.query(collection_name="users", field="verification_token", operator="==", value=_token_digest(payload.token))
    if not users_found:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired verification token")

    firestore_ops.update(
        collection_name="users",
        document_id=users_found[0]["id"],
        updates={"is_verified": True, "verification_token": None},
    )
    return {"message": "Email verified successfully"}


@router.post("/forgot-password")
async def forgot_password(payload: ForgotPasswordRequest):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()
    response = {"message": "If that e-mail is registered, a password reset link has been sent."}

    users_found = firestore_ops.query(collection_name="users", field="email", operator="==", value=payload.email)
    if not users_found:
        return response

    reset_token = generate_one_time_token()
    firestore_ops.update(
        collection_name="users",
        document_id=users_found[0]["id"],
        updates={
            "reset_password_token": _token_digest(reset_token),
            "reset_password_expires": datetime.utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
        },
    )
    logger.info(f"Password reset requested for user {users_found[0]['id']}")

    if not settings.is_production():
        response["reset_token"] = reset_token
    return response


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordRequest):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    users_found = firestore_ops.query(collection_name="users", field="reset_password_token", operator="==", value=_token_digest(payload.token))
    expires = as_utc_naive(users_found[0].get("reset_password_expires")) if users_found else None
    if not expires or expires < datetime.utcnow():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")

    firestore_ops.update(
        collection_name="users",
        document_id=users_found[0]["id"],
        updates={
            "hashed_password": get_password_hash(payload.password),
            "reset_password_token": None,
            "reset_password_expires": None,
        },
    )
    return {"message": "Password reset successful"}


@router.post("/change-password")
async def change_password(payload: ChangePasswordRequest, current_user: User = Depends(get_current_user)):
    firestore_ops: FirestoreBaseModel = get_firestore_ops_instance()

    user_record = firestore_ops.get(collection_name="users", document_id=current_user.id)
    if not user_record or not verify_password(payload.current_password, user_record.get("hashed_password") or ""):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Current password is incorrect")

    if not firestore_ops.update(
        collection_name="users",
        document_id=current_user.id,
        updates={"hashed_password": get_password_hash(payload.new_password)},
    ):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not change password")
    return {"message": "Password changed successfully"}
