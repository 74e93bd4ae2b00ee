"""
Repository interfaces and their SQLAlchemy implementations.

Every SQL repository opens a short-lived session per call from the session
factory it was given, so concurrent callers (batch translation) never share
an ``AsyncSession``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from namaste_fhir.constants import ICD11_SYSTEM
from namaste_fhir.db.models import Concept, Mapping, User
from namaste_fhir.schema import ConceptPage, ConceptRecord, MappingRecord, UserRecord

logger = logging.getLogger(__name__)


class ConceptRepository(Protocol):
    """Lookup and search of terminology concepts."""

    async def find_by_code(self, code: str, system: str) -> Optional[ConceptRecord]: ...

    async def search(
        self, query: str, system: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> ConceptPage: ...

    async def list_by_system(self, system: str, limit: int = 100, offset: int = 0) -> ConceptPage: ...

    async def bulk_insert(self, concepts: Sequence[ConceptRecord]) -> int: ...


class MappingStore(Protocol):
    """Persisted source-to-target concept relationships."""

    async def find_active_for_source(
        self, source_system: str, source_code: str, target_system: str = ICD11_SYSTEM
    ) -> List[MappingRecord]: ...

    async def find_for_source(self, source_system: str, source_code: str) -> List[MappingRecord]: ...

    async def list_active(
        self, source_system: Optional[str] = None, target_system: str = ICD11_SYSTEM, limit: int = 1000
    ) -> List[MappingRecord]: ...

    async def upsert(self, mapping: MappingRecord) -> MappingRecord: ...

    async def propose(self, mapping: MappingRecord) -> Optional[MappingRecord]: ...

    async def retire(self, mapping_id: int) -> bool: ...

    async def statistics(self) -> Dict[str, Any]: ...


class UserRepository(Protocol):
    """Local records of ABHA-authenticated users."""

    async def get(self, abha_id: str) -> Optional[UserRecord]: ...

    async def upsert(self, values: Dict[str, Any]) -> UserRecord: ...

    async def update(self, abha_id: str, values: Dict[str, Any]) -> Optional[UserRecord]: ...


class SqlConceptRepository:
    """Concept repository backed by the ``concepts`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_by_code(self, code: str, system: str) -> Optional[ConceptRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Concept).where(and_(Concept.system == system, Concept.code == code))
            )
            concept = result.scalar_one_or_none()
            return ConceptRecord.model_validate(concept) if concept else None

    async def search(
        self, query: str, system: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> ConceptPage:
        """
        Case-insensitive substring search over code, display and definition.

        Exact code matches rank first, then display prefix matches.
        """
        pattern = f"%{query}%"
        conditions = [
            Concept.status == "active",
            or_(
                Concept.display.ilike(pattern),
                Concept.definition.ilike(pattern),
                Concept.code.ilike(pattern),
            ),
        ]
        if system:
            conditions.append(Concept.system == system)

        rank = case(
            (func.lower(Concept.code) == query.lower(), 0),
            (Concept.display.ilike(f"{query}%"), 1),
            else_=2,
        )

        async with self.session_factory() as session:
            total = await session.scalar(select(func.count(Concept.id)).where(*conditions))
            result = await session.execute(
                select(Concept)
                .where(*conditions)
                .order_by(rank, Concept.display, Concept.id)
                .offset(offset)
                .limit(limit)
            )
            items = [ConceptRecord.model_validate(c) for c in result.scalars().all()]

        return ConceptPage(items=items, total=total or 0)

    async def list_by_system(self, system: str, limit: int = 100, offset: int = 0) -> ConceptPage:
        async with self.session_factory() as session:
            total = await session.scalar(
                select(func.count(Concept.id)).where(Concept.system == system)
            )
            result = await session.execute(
                select(Concept)
                .where(Concept.system == system)
                .order_by(Concept.code)
                .offset(offset)
                .limit(limit)
            )
            items = [ConceptRecord.model_validate(c) for c in result.scalars().all()]

        return ConceptPage(items=items, total=total or 0)

    async def bulk_insert(self, concepts: Sequence[ConceptRecord]) -> int:
        """
        Insert concepts that do not exist yet.

        Returns:
            Number of concepts inserted; existing (system, code) pairs are skipped
        """
        inserted = 0
        async with self.session_factory() as session:
            existing = await session.execute(select(Concept.system, Concept.code))
            seen = {(row.system, row.code) for row in existing}

            for record in concepts:
                key = (record.system, record.code)
                if key in seen:
                    continue
                session.add(Concept(**record.model_dump()))
                seen.add(key)
                inserted += 1

            await session.commit()

        return inserted


class SqlMappingStore:
    """Mapping store backed by the ``mappings`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_active_for_source(
        self, source_system: str, source_code: str, target_system: str = ICD11_SYSTEM
    ) -> List[MappingRecord]:
        """Active mappings for a source concept, best first (ties: oldest first)."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Mapping)
                .where(
                    and_(
                        Mapping.source_system == source_system,
                        Mapping.source_code == source_code,
                        Mapping.target_system == target_system,
                        Mapping.status == "active",
                    )
                )
                .order_by(Mapping.confidence.desc(), Mapping.created_at.asc(), Mapping.id.asc())
            )
            return [MappingRecord.model_validate(m) for m in result.scalars().all()]

    async def find_for_source(self, source_system: str, source_code: str) -> List[MappingRecord]:
        """All mappings for a source concept, whatever their status."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Mapping)
                .where(and_(Mapping.source_system == source_system, Mapping.source_code == source_code))
                .order_by(Mapping.status, Mapping.confidence.desc(), Mapping.id)
            )
            return [MappingRecord.model_validate(m) for m in result.scalars().all()]

    async def list_active(
        self, source_system: Optional[str] = None, target_system: str = ICD11_SYSTEM, limit: int = 1000
    ) -> List[MappingRecord]:
        query = select(Mapping).where(
            and_(Mapping.status == "active", Mapping.target_system == target_system)
        )
        if source_system:
            query = query.where(Mapping.source_system == source_system)
        query = query.order_by(Mapping.source_system, Mapping.source_code, Mapping.confidence.desc()).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [MappingRecord.model_validate(m) for m in result.scalars().all()]

    async def upsert(self, mapping: MappingRecord) -> MappingRecord:
        """
        Insert or update the row for the mapping's (source, target) pair.

        The pair is unique in the table, so there is never more than one
        active row per pair.
        """
        values = mapping.model_dump(exclude={"id", "created_at"})

        async with self.session_factory() as session:
            try:
                row = await self._apply(session, values)
                await session.commit()
            except IntegrityError:
                # A concurrent insert won the race; update that row instead.
                await session.rollback()
                row = await self._apply(session, values)
                await session.commit()
            await session.refresh(row)
            return MappingRecord.model_validate(row)

    async def propose(self, mapping: MappingRecord) -> Optional[MappingRecord]:
        """
        Store a review proposal unless the pair already has a non-proposal row.

        Curated rows, retired ones included, are left untouched and None is
        returned. An earlier proposal for the same pair is refreshed.
        """
        values = mapping.model_dump(exclude={"id", "created_at"})

        async with self.session_factory() as session:
            row = await self._find_pair(session, values)
            if row is None:
                row = Mapping(**values)
                session.add(row)
            elif row.status == "review" and row.origin == values["origin"]:
                for key, value in values.items():
                    setattr(row, key, value)
            else:
                logger.info(
                    "Keeping %s mapping %s|%s -> %s; proposal discarded",
                    row.status, row.source_system, row.source_code, row.target_code
                )
                return None

            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info("Concurrent write for %s|%s; proposal discarded", values["source_system"], values["source_code"])
                return None
            await session.refresh(row)
            return MappingRecord.model_validate(row)

    async def _apply(self, session: AsyncSession, values: Dict[str, Any]) -> Mapping:
        row = await self._find_pair(session, values)
        if row is None:
            row = Mapping(**values)
            session.add(row)
        else:
            for key, value in values.items():
                setattr(row, key, value)
        await session.flush()
        return row

    @staticmethod
    async def _find_pair(session: AsyncSession, values: Dict[str, Any]) -> Optional[Mapping]:
        result = await session.execute(
            select(Mapping).where(
                and_(
                    Mapping.source_system == values["source_system"],
                    Mapping.source_code == values["source_code"],
                    Mapping.target_system == values["target_system"],
                    Mapping.target_code == values["target_code"],
                )
            )
        )
        return result.scalar_one_or_none()

    async def retire(self, mapping_id: int) -> bool:
        async with self.session_factory() as session:
            row = await session.get(Mapping, mapping_id)
            if row is None:
                return False
            row.status = "retired"
            await session.commit()
            return True

    async def statistics(self) -> Dict[str, Any]:
        """Counts by status, source system and equivalence, plus mean active confidence."""
        async with self.session_factory() as session:
            total = await session.scalar(select(func.count(Mapping.id)))
            by_status = await session.execute(
                select(Mapping.status, func.count(Mapping.id)).group_by(Mapping.status)
            )
            by_source = await session.execute(
                select(Mapping.source_system, func.count(Mapping.id))
                .where(Mapping.status == "active")
                .group_by(Mapping.source_system)
            )
            by_equivalence = await session.execute(
                select(Mapping.equivalence, func.count(Mapping.id))
                .where(Mapping.status == "active")
                .group_by(Mapping.equivalence)
            )
            average = await session.scalar(
                select(func.avg(Mapping.confidence)).where(Mapping.status == "active")
            )

        return {
            "total_mappings": total or 0,
            "status_distribution": dict(by_status.all()),
            "source_system_distribution": dict(by_source.all()),
            "equivalence_distribution": dict(by_equivalence.all()),
            "average_confidence": round(float(average), 3) if average is not None else 0.0,
        }


class SqlUserRepository:
    """User repository backed by the ``users`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, abha_id: str) -> Optional[UserRecord]:
        async with self.session_factory() as session:
            user = await session.get(User, abha_id)
            return UserRecord.model_validate(user) if user else None

    async def upsert(self, values: Dict[str, Any]) -> UserRecord:
        """Create or update a user keyed by ABHA id and stamp the login time."""
        values = {**values, "last_login": datetime.now(timezone.utc), "is_active": True}

        async with self.session_factory() as session:
            user = await session.get(User, values["abha_id"])
            created = user is None
            if created:
                user = User(**values)
                session.add(user)
            else:
                for key, value in values.items():
                    setattr(user, key, value)
            await session.commit()
            await session.refresh(user)

        logger.info("User %s: %s", "created" if created else "updated", user.abha_id)
        return UserRecord.model_validate(user)

    async def update(self, abha_id: str, values: Dict[str, Any]) -> Optional[UserRecord]:
        """Change fields of an existing user; None when there is no such user."""
        async with self.session_factory() as session:
            user = await session.get(User, abha_id)
            if user is None:
                return None
            for key, value in values.items():
                setattr(user, key, value)
            await session.commit()
            await session.refresh(user)
            return UserRecord.model_validate(user)
