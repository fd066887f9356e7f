"""
User model

Users are provisioned by the auth side of the platform; this service only
reads them to fan notifications out to everyone holding a role.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime

from app.db.base import Base, enum_column, lifecycle_column, utcnow


class Role(str, enum.Enum):
    """Closed set of roles the auth gate may attach to a caller."""
    DIRECTOR = "director"
    MANAGER = "manager"
    PURCHASING = "purchasing"
    COST_CONTROL = "cost_control"
    GENERAL_MANAGER = "general_manager"
    FIELD_TEAM = "field_team"

    @classmethod
    def parse(cls, value):
        """Return the Role for a raw role string, or None if it is not one."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200), unique=True, nullable=False, index=True)
    role = enum_column(Role, nullable=False, index=True)
    position = Column(String(100), nullable=True)
    lifecycle = lifecycle_column()

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<User {self.email} ({self.role.value if self.role else '?'})>"
