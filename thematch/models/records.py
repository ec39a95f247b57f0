"""Relational representation of matches and brackets.

Brackets are stored normalized: one row per bracket, one row per bracket
match. Rounds are not stored; they are the (side, round) grouping of the
match rows.
"""
import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from thematch.core.database import Base


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC.

    SQLite drops the offset of aware values, so everything is converted to
    UTC on the way in and comes back tagged as UTC. Naive input is taken to
    be UTC already.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)


class MatchRecord(Base):
    __tablename__ = "matches"

    id = Column(String, primary_key=True, index=True)
    title = Column(String, nullable=False)
    type = Column(String, nullable=False)
    status = Column(String, default="draft")  # cache of the computed status
    creator_id = Column(String, nullable=False, index=True)
    registration_start = Column(UTCDateTime, nullable=True)
    registration_deadline = Column(UTCDateTime, nullable=True)
    start_date = Column(UTCDateTime, nullable=True)
    end_date = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    entrants = relationship("EntrantRecord", back_populates="match", order_by="EntrantRecord.list_order")
    brackets = relationship("BracketRecord", back_populates="match")


class EntrantRecord(Base):
    __tablename__ = "entrants"

    match_id = Column(String, ForeignKey("matches.id"), primary_key=True)
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    seed = Column(Integer, nullable=True)
    list_order = Column(Integer, nullable=False, default=0)  # registration order, used for seed ties

    match = relationship("MatchRecord", back_populates="entrants")


class BracketRecord(Base):
    __tablename__ = "tournament_brackets"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    match_id = Column(String, ForeignKey("matches.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    total_teams = Column(Integer, nullable=False)
    current_round = Column(Integer, nullable=False, default=1)
    champion = Column(String, nullable=True)

    match = relationship("MatchRecord", back_populates="brackets")
    matches = relationship("BracketMatchRecord", back_populates="bracket", cascade="all, delete-orphan")


class BracketMatchRecord(Base):
    __tablename__ = "bracket_matches"

    bracket_id = Column(String, ForeignKey("tournament_brackets.id"), primary_key=True)
    id = Column(String, primary_key=True)
    match_id = Column(String, ForeignKey("matches.id"), nullable=False, index=True)

    round = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False)
    side = Column(String, nullable=False, default="winners")

    team1_id = Column(String, nullable=True)
    team1_name = Column(String, nullable=True)
    team1_seed = Column(Integer, nullable=True)
    team1_live_score = Column(Integer, nullable=True)
    team2_id = Column(String, nullable=True)
    team2_name = Column(String, nullable=True)
    team2_seed = Column(Integer, nullable=True)
    team2_live_score = Column(Integer, nullable=True)

    team1_score = Column(Integer, nullable=True)
    team2_score = Column(Integer, nullable=True)
    winner = Column(String, nullable=True)
    status = Column(String, nullable=False, default="waiting")
    is_bye = Column(Boolean, nullable=False, default=False)

    next_match_id = Column(String, nullable=True)
    next_match_slot = Column(Integer, nullable=True)
    loser_match_id = Column(String, nullable=True)
    loser_match_slot = Column(Integer, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    bracket = relationship("BracketRecord", back_populates="matches")
