# taskcurator/models/user.py
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from taskcurator.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)

    # approval workflow lives outside this service; we only read it
    email_verified_at = Column(DateTime, nullable=True)
    pending_approval = Column(Boolean, default=False, nullable=False)
    approved_at = Column(DateTime, nullable=True)

    is_active = Column(Boolean, default=True)
