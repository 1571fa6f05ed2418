"""SQLAlchemy profile store.

Stores profiles in a ``profiles`` table. Every row carries a version column
used as SQLAlchemy's ``version_id_col``, so two writers racing on the same
profile cannot both commit: the loser gets a StorageError and may retry.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .exceptions import StorageError
from .models import ProfileRecord
from .ports import IProfileStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class ProfileModel(Base):
    """Profile row."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    skills: Mapped[list[str]] = mapped_column(JSON, default=list)
    preferred_locations: Mapped[list[str]] = mapped_column(JSON, default=list)
    resume_url: Mapped[str | None] = mapped_column(String, nullable=True)
    certifications: Mapped[list[str]] = mapped_column(JSON, default=list)
    achievements: Mapped[str | None] = mapped_column(String, nullable=True)
    mobile_number: Mapped[str | None] = mapped_column(String, nullable=True)
    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    two_factor_secret: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


_WRITABLE = frozenset(ProfileRecord.model_fields) - {"id", "created_at", "updated_at"}
_LIST_FIELDS = frozenset({"skills", "preferred_locations", "certifications"})


def _to_record(model: ProfileModel) -> ProfileRecord:
    return ProfileRecord.model_validate(model, from_attributes=True)


async def create_tables(engine: AsyncEngine) -> None:
    """Create the profiles table if it does not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class SQLAlchemyProfileStore(IProfileStore):
    """IProfileStore backed by an async SQLAlchemy engine.

    Each call runs in its own session and transaction.

    Example:
        ```python
        engine = create_async_engine("postgresql+asyncpg://...")
        store = SQLAlchemyProfileStore(async_sessionmaker(engine))
        gateway = ProfileSecretGateway(store)
        ```
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def fetch(self, account_id: str) -> ProfileRecord | None:
        try:
            async with self.session_factory() as session:
                model = await session.get(ProfileModel, account_id)
                return _to_record(model) if model else None
        except SQLAlchemyError as e:
            raise StorageError("Failed to load profile") from e

    async def fetch_by_email(self, email: str) -> ProfileRecord | None:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ProfileModel).where(ProfileModel.email == email)
                )
                model = result.scalar_one_or_none()
                return _to_record(model) if model else None
        except SQLAlchemyError as e:
            raise StorageError("Failed to load profile") from e

    async def upsert(self, account_id: str, fields: dict[str, Any]) -> ProfileRecord:
        unknown = set(fields) - _WRITABLE
        if unknown:
            raise StorageError(f"Unknown profile fields: {sorted(unknown)}")

        try:
            async with self.session_factory() as session, session.begin():
                model = await session.get(ProfileModel, account_id)
                if model is None:
                    if not fields.get("email"):
                        raise StorageError("email is required to create a profile")
                    model = ProfileModel(
                        id=account_id,
                        email=fields["email"],
                        full_name=None,
                        skills=[],
                        preferred_locations=[],
                        resume_url=None,
                        certifications=[],
                        achievements=None,
                        mobile_number=None,
                        two_factor_enabled=False,
                        two_factor_secret=None,
                        created_at=datetime.now(timezone.utc),
                    )
                    session.add(model)
                for name, value in fields.items():
                    if name in _LIST_FIELDS and value is not None:
                        value = list(value)
                    setattr(model, name, value)
                model.updated_at = datetime.now(timezone.utc)
                await session.flush()
                record = _to_record(model)
        except SQLAlchemyError as e:
            logger.warning("Profile write for account %s failed: %s", account_id, e)
            raise StorageError("Failed to save profile") from e
        return record


__all__: list[str] = [
    "Base",
    "ProfileModel",
    "SQLAlchemyProfileStore",
    "create_tables",
]
