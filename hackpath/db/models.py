"""SQLAlchemy database models for the curriculum catalog and user progress."""
import uuid
from datetime import datetime

from sqlalchemy import (
	Boolean,
	CheckConstraint,
	DateTime,
	ForeignKey,
	Index,
	Integer,
	String,
	Text,
	UniqueConstraint,
	func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
	return str(uuid.uuid4())


class Base(DeclarativeBase):
	"""Base class for all database models."""

	pass


class CurriculumLevel(Base):
	"""
	Levels table.

	Coarse skill tiers. ``required_hacks_count`` is the completion threshold
	used by level progress recomputation.
	"""

	__tablename__ = "levels"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	name: Mapped[str] = mapped_column(String(255), nullable=False)
	slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
	description: Mapped[str | None] = mapped_column(Text, nullable=True)
	position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	required_hacks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	optional_hacks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

	__table_args__ = (
		CheckConstraint("required_hacks_count >= 0", name="non_negative_required_hacks"),
		CheckConstraint("optional_hacks_count >= 0", name="non_negative_optional_hacks"),
	)

	def __repr__(self) -> str:
		return f"<CurriculumLevel(id={self.id}, slug={self.slug})>"


class CurriculumHack(Base):
	"""Hacks table. Each hack belongs to exactly one level."""

	__tablename__ = "hacks"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	name: Mapped[str] = mapped_column(String(255), nullable=False)
	slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
	level_id: Mapped[str] = mapped_column(
		String(36), ForeignKey("levels.id", ondelete="CASCADE"), nullable=False, index=True
	)
	position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

	def __repr__(self) -> str:
		return f"<CurriculumHack(id={self.id}, slug={self.slug}, level_id={self.level_id})>"


class LevelPrerequisite(Base):
	"""Level prerequisite edges: ``level_id`` requires ``prerequisite_level_id``."""

	__tablename__ = "level_prerequisites"

	level_id: Mapped[str] = mapped_column(
		String(36), ForeignKey("levels.id", ondelete="CASCADE"), primary_key=True
	)
	prerequisite_level_id: Mapped[str] = mapped_column(
		String(36), ForeignKey("levels.id", ondelete="CASCADE"), primary_key=True
	)

	__table_args__ = (
		CheckConstraint("level_id <> prerequisite_level_id", name="no_self_level_prerequisite"),
	)


class HackPrerequisite(Base):
	"""Hack prerequisite edges. The prerequisite may live in any level."""

	__tablename__ = "hack_prerequisites"

	hack_id: Mapped[str] = mapped_column(
		String(36), ForeignKey("hacks.id", ondelete="CASCADE"), primary_key=True
	)
	prerequisite_hack_id: Mapped[str] = mapped_column(
		String(36), ForeignKey("hacks.id", ondelete="CASCADE"), primary_key=True
	)

	__table_args__ = (
		CheckConstraint("hack_id <> prerequisite_hack_id", name="no_self_hack_prerequisite"),
		Index("idx_hack_prerequisites_prerequisite_hack_id", "prerequisite_hack_id"),
	)


class CurriculumHackCheck(Base):
	"""Checklist items inside a hack."""

	__tablename__ = "hack_checks"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	hack_id: Mapped[str] = mapped_column(
		String(36), ForeignKey("hacks.id", ondelete="CASCADE"), nullable=False, index=True
	)
	title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
	position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class UserHack(Base):
	"""
	Per-user hack progress.

	One row per (user, hack); upserts are keyed by that pair, never by ``id``.
	"""

	__tablename__ = "user_hacks"

	id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
	user_id: Mapped[str] = mapped_column(String(255), nullable=False)
	hack_id: Mapped[str] = mapped_column(
		String(36), ForeignKey("hacks.id", ondelete="CASCADE"), nullable=False, index=True
	)
	view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
	viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
	updated_at: Mapped[datetime] = mapped_column(
		DateTime(timezone=True), nullable=False, default=func.now(), onupdate=func.now()
	)

	__table_args__ = (
		UniqueConstraint("user_id", "hack_id", name="uq_user_hacks_user_hack"),
		CheckConstraint("view_count >= 0", name="non_negative_view_count"),
	)

	def __repr__(self) -> str:
		return (
			f"<UserHack(user_id={self.user_id}, hack_id={self.hack_id}, "
			f"view_count={self.view_count}, completed_at={self.completed_at})>"
		)


class UserLevel(Base):
	"""Per-user level progress, rewritten by level recomputation."""

	__tablename__ = "user_levels"

	id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
	user_id: Mapped[str] = mapped_column(String(255), nullable=False)
	level_id: Mapped[str] = mapped_column(
		String(36), ForeignKey("levels.id", ondelete="CASCADE"), nullable=False, index=True
	)
	hacks_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	total_required_hacks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
	updated_at: Mapped[datetime] = mapped_column(
		DateTime(timezone=True), nullable=False, default=func.now(), onupdate=func.now()
	)

	__table_args__ = (
		UniqueConstraint("user_id", "level_id", name="uq_user_levels_user_level"),
	)


class UserHackCheck(Base):
	"""Per-user check state. ``completed_at`` is cleared when a check is un-checked."""

	__tablename__ = "user_hack_checks"

	id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
	user_id: Mapped[str] = mapped_column(String(255), nullable=False)
	hack_check_id: Mapped[str] = mapped_column(
		String(36), ForeignKey("hack_checks.id", ondelete="CASCADE"), nullable=False, index=True
	)
	completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

	__table_args__ = (
		UniqueConstraint("user_id", "hack_check_id", name="uq_user_hack_checks_user_check"),
	)
