"""
Construction project model
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Date, Text

from app.db.base import Base, lifecycle_column, utcnow


class Project(Base):
    """A construction project. BOM entries, usage and PRs reference it."""
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    customer = Column(String(200), nullable=True)
    city = Column(String(100), nullable=True)

    # Budget
    estimated_cost = Column(Numeric(15, 2), default=0, nullable=False)
    actual_cost = Column(Numeric(15, 2), default=0, nullable=False)

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    lifecycle = lifecycle_column()

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"
