"""
Auth Service - handles login against gym profiles.
"""
from .base import HTTPException, logging, get_db_session, ProfileORM
from auth import verify_password, create_access_token
from models import TokenResponse

logger = logging.getLogger("gym_app")


class AuthService:
    """Service for authenticating profiles and issuing tokens."""

    def authenticate_user(self, email: str, password: str):
        """Authenticate a profile by email and password."""
        db = get_db_session()
        try:
            user = db.query(ProfileORM).filter(ProfileORM.email == email).first()
            if not user or not user.is_active:
                return False
            if not verify_password(password, user.hashed_password):
                return False
            return user
        finally:
            db.close()

    def login(self, email: str, password: str) -> TokenResponse:
        user = self.authenticate_user(email, password)
        if not user:
            logger.info(f"AUTH: Failed login for {email}")
            raise HTTPException(
                status_code=401,
                detail="Incorrect email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )

        access_token = create_access_token(data={"sub": user.email, "role": user.role})
        logger.info(f"AUTH: {user.email} logged in as {user.role}")
        return TokenResponse(access_token=access_token, role=user.role, user_id=user.id)


# Singleton instance
auth_service = AuthService()

def get_auth_service() -> AuthService:
    """Dependency injection helper."""
    return auth_service
