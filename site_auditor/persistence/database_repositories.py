"""SQLAlchemy report repository for persistent deployments."""

import asyncio
import json
import logging
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, scoped_session, sessionmaker

from .repositories import ReportRecord, ReportRepository

logger = logging.getLogger(__name__)

Base = declarative_base()


class ReportTable(Base):
    """SQLAlchemy model for audit reports."""
    __tablename__ = 'reports'

    id = Column(String(64), primary_key=True)
    url = Column(String(2048), nullable=False, index=True)
    report_data = Column(Text, nullable=False)  # JSON string
    screenshot_url = Column(String(2048), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


class DatabaseReportRepository(ReportRepository):
    """Database implementation of the report repository."""

    def __init__(self, database_url: str = "sqlite:///./site_auditor.db"):
        """Initialize database repository.

        Args:
            database_url: Database connection URL
        """
        self.database_url = database_url
        self.engine = create_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False} if "sqlite" in database_url else {}
        )

        Base.metadata.create_all(self.engine)

        self.SessionLocal = scoped_session(sessionmaker(bind=self.engine))
        self._lock = asyncio.Lock()

        logger.info(f"DatabaseReportRepository initialized with database_url={database_url}")

    def _to_record(self, row: ReportTable) -> ReportRecord:
        return ReportRecord(
            id=row.id,
            url=row.url,
            report_data=json.loads(row.report_data),
            screenshot_url=row.screenshot_url,
            created_at=row.created_at,
        )

    async def insert(self, record: ReportRecord) -> None:
        async with self._lock:
            session = self.SessionLocal()
            try:
                session.add(ReportTable(
                    id=record.id,
                    url=record.url,
                    report_data=json.dumps(record.report_data),
                    screenshot_url=record.screenshot_url,
                    created_at=record.created_at,
                ))
                session.commit()
                logger.debug(f"Inserted report {record.id}")
            except IntegrityError as e:
                session.rollback()
                raise ValueError(f"Report {record.id} already exists") from e
            except SQLAlchemyError:
                session.rollback()
                raise
            finally:
                self.SessionLocal.remove()

    async def get(self, report_id: str) -> Optional[ReportRecord]:
        async with self._lock:
            session = self.SessionLocal()
            try:
                row = session.get(ReportTable, report_id)
                return self._to_record(row) if row else None
            finally:
                self.SessionLocal.remove()

    async def delete(self, report_id: str) -> bool:
        async with self._lock:
            session = self.SessionLocal()
            try:
                row = session.get(ReportTable, report_id)
                if row is None:
                    return False
                session.delete(row)
                session.commit()
                return True
            except SQLAlchemyError:
                session.rollback()
                raise
            finally:
                self.SessionLocal.remove()

    def close(self) -> None:
        self.SessionLocal.remove()
        self.engine.dispose()
