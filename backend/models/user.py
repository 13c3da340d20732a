"""User model for authentication and authorization."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from database import Base


class User(Base):
    """
    Dashboard user — created through registration or the local admin bootstrap.

    Roles:
        admin — full access, including every device on the device-access page
        user  — dashboard access; device connections are subject to the
                access decision table (see ``services.access_control``)
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="user", index=True)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    last_login_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<User {self.email} role={self.role}>"
