"""Defines the 'users' and 'sessions' tables using SQLAlchemy ORM."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from auth_service.db import Base


class User(Base):
    """
    SQLAlchemy model for the 'users' table.
    Holds the credentials and profile of every account.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # Both email and username identify an account and must be unique.
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(50), unique=True, index=True, nullable=False)

    # bcrypt hash; the plaintext password is never stored.
    hashed_password = Column(String(255), nullable=False)

    # Display name, editable from the profile page
    name = Column(String(100), nullable=True)

    email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    sessions = relationship("Session", back_populates="user", cascade="all, delete-orphan")


class Session(Base):
    """
    SQLAlchemy model for the 'sessions' table.
    One row per issued token; the row is removed on logout so the token can be revoked server-side.
    """
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    token = Column(String(512), unique=True, index=True, nullable=False)

    # Naive UTC, same instant as the token's 'exp' claim
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="sessions")
