"""User registration and login."""
import logging
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from errors import InvalidInputError, InvalidStateError, UnauthorizedError
from models import User
from monitoring import auth_attempts_counter, auth_failures_counter
from schemas import RegisterRequest
from security import generate_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


class UserService:
    """Service for managing user accounts and their access tokens."""

    def register(self, db: Session, request: RegisterRequest) -> User:
        """
        Register a new user.

        Args:
            db: Database session
            request: Registration payload

        Returns:
            The created user

        Raises:
            InvalidInputError: If a required field is blank
            InvalidStateError: If the username or email is already taken
        """
        required = {
            "username": request.username,
            "email": request.email,
            "full_name": request.full_name,
            "phone_number": request.phone_number,
        }
        blank = [field for field, value in required.items() if not value.strip()]
        if blank:
            raise InvalidInputError(
                "All fields are required",
                errors=[{"field": field, "message": "must not be blank"} for field in blank]
            )

        username = request.username.strip().lower()
        email = request.email.strip().lower()

        existing = db.query(User).filter(
            or_(User.username == username, User.email == email)
        ).first()
        if existing:
            raise InvalidStateError("User with email or username already exists", status_code=409)

        user = User(
            username=username,
            email=email,
            full_name=request.full_name.strip(),
            phone_number=request.phone_number.strip(),
            role=request.role,
            street=request.street,
            city=request.city,
            state=request.state,
            zip_code=request.zip_code,
            country=request.country or "Nepal",
            password_hash=hash_password(request.password),
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info("User registered", extra={"user_id": user.id, "role": user.role})
        return user

    def login(
        self,
        db: Session,
        password: str,
        username: Optional[str] = None,
        email: Optional[str] = None
    ) -> Tuple[str, User]:
        """
        Authenticate a user and issue a fresh access token.

        Returns:
            Tuple of (access_token, user)

        Raises:
            InvalidInputError: If neither username nor email is given
            UnauthorizedError: If the credentials do not match
        """
        auth_attempts_counter.add(1, {"type": "login"})

        if not (username or email):
            raise InvalidInputError("Username or email is required")

        query = db.query(User)
        if username:
            query = query.filter(User.username == username.strip().lower())
        else:
            query = query.filter(User.email == email.strip().lower())
        user = query.first()

        if user is None or not verify_password(password, user.password_hash):
            auth_failures_counter.add(1, {"reason": "invalid_credentials"})
            logger.warning("Login failed: Invalid credentials", extra={
                "username": username,
                "email": email
            })
            raise UnauthorizedError("Invalid user credentials")

        token = generate_access_token()
        user.access_token = token
        db.commit()
        db.refresh(user)

        logger.info("User logged in successfully", extra={"user_id": user.id})
        return token, user

    def logout(self, db: Session, user_id: int) -> None:
        """Revoke the user's access token."""
        user = db.get(User, user_id)
        if user is not None:
            user.access_token = None
            db.commit()
            logger.info("User logged out", extra={"user_id": user_id})
