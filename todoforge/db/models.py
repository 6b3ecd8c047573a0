"""
Database Models for TodoForge
=============================

SQLAlchemy models for replay recordings: one row per recorded session and one
row per recorded action step.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlalchemy import String, Integer, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class ReplaySessionModel(Base):
    """A replay recording of one autonomous session."""
    __tablename__ = "replay_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="recording")  # recording, completed, failed
    total_steps: Mapped[int] = mapped_column(Integer, default=0)

    steps: Mapped[List["ReplayStepModel"]] = relationship(
        back_populates="replay_session",
        cascade="all, delete-orphan",
        order_by="ReplayStepModel.step_number",
    )


class ReplayStepModel(Base):
    """One recorded action with the file content around its execution."""
    __tablename__ = "replay_steps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    replay_session_id: Mapped[int] = mapped_column(ForeignKey("replay_sessions.id"))
    step_number: Mapped[int] = mapped_column(Integer)
    action_id: Mapped[str] = mapped_column(String(64), index=True)
    action: Mapped[Dict[str, Any]] = mapped_column(JSON)
    file_state_before: Mapped[str] = mapped_column(Text, default="")
    file_state_after: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    working_directory: Mapped[str] = mapped_column(Text, default="")
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    replay_session: Mapped["ReplaySessionModel"] = relationship(back_populates="steps")
