import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    JSON, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship
from .database import Base


def _now():
    return datetime.now(timezone.utc)


class Challenge(Base):
    """One target image per calendar day. Owned by the scheduler; the core only fills `embedding`."""
    __tablename__ = "challenges"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    date = Column(Date, nullable=False, unique=True)
    image_url = Column(Text, nullable=False)
    # Written once on the first scoring request, never recomputed.
    embedding = Column(JSON, nullable=True)
    photographer_name = Column(String(255), nullable=True)
    photographer_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)

    guesses = relationship("Guess", back_populates="challenge", lazy="select")


class Guess(Base):
    """A single scored attempt. Rows are insert-only."""
    __tablename__ = "guesses"
    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", "attempt_number", name="uq_guess_attempt"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    challenge_id = Column(Uuid(as_uuid=True), ForeignKey("challenges.id"), nullable=False, index=True)
    prompt = Column(String(100), nullable=False)
    generated_image_url = Column(Text, nullable=True)
    score = Column(Float, nullable=False)
    attempt_number = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)

    challenge = relationship("Challenge", back_populates="guesses")
