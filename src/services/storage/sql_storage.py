"""
SQLAlchemy Storage Implementation

Relational storage for users and their transactions. SQLite is the
default (a single file, no server), any SQLAlchemy URL works.

SCHEMA:
- users: id (from the auth provider), unique email, optional name,
  currency, timestamps
- transactions: uuid id, name, fixed-point amount, category enum,
  date, timestamps, user_id -> users.id ON DELETE CASCADE

Every transaction query filters on user_id. Each call opens and
closes its own session.
"""

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterator, Optional
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    create_engine,
    delete,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

import structlog

from src.config import get_settings
from src.models.transaction import Category, TransactionRecord, UserRecord, utcnow
from src.services.storage.interface import (
    ConnectionError,
    StorageError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)

Base = declarative_base()


class UserRow(Base):
    """An application user."""

    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    transactions = relationship(
        "TransactionRow",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TransactionRow(Base):
    """A single expense."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(200), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(
        Enum(
            Category,
            name="category",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    date = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    user_id = Column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user = relationship("UserRow", back_populates="transactions")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores FK constraints (and so ON DELETE CASCADE) unless asked
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _to_transaction_record(row: TransactionRow) -> TransactionRecord:
    return TransactionRecord(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        amount=float(row.amount),
        category=row.category,
        date=row.date,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_user_record(row: UserRow) -> UserRecord:
    return UserRecord(
        id=row.id,
        email=row.email,
        name=row.name,
        currency=row.currency,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlTransactionStorage(TransactionStorageInterface):
    """
    Transaction storage backed by SQLAlchemy.

    Call `initialize()` once at startup to create the schema.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        echo: Optional[bool] = None,
        engine: Optional[Engine] = None,
    ):
        if engine is None:
            settings = get_settings().database
            url = url or settings.url
            echo = settings.echo if echo is None else echo
            engine = create_engine(url, echo=echo)
        self._engine = engine
        if self._engine.dialect.name == "sqlite":
            event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _create_schema(self) -> None:
        Base.metadata.create_all(self._engine)

    def initialize(self) -> None:
        """
        Create tables if they don't exist.

        Raises:
            ConnectionError: If the database can't be reached
        """
        try:
            self._create_schema()
        except SQLAlchemyError as e:
            raise ConnectionError(f"Failed to initialize database: {e}") from e
        logger.info("storage_initialized", dialect=self._engine.dialect.name)

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Session that commits on success and maps driver errors to StorageError."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def upsert_user(
        self,
        user_id: str,
        email: str,
        name: Optional[str],
        default_currency: str = "USD",
    ) -> UserRecord:
        with self._session() as session:
            row = session.get(UserRow, user_id)
            if row is None:
                row = UserRow(
                    id=user_id,
                    email=email,
                    name=name,
                    currency=default_currency,
                )
                session.add(row)
            else:
                row.email = email
                row.name = name
            try:
                session.flush()
            except IntegrityError as e:
                raise StorageError(f"User email already in use: {email}") from e
            return _to_user_record(row)

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._session() as session:
            row = session.get(UserRow, user_id)
            return _to_user_record(row) if row else None

    async def delete_user(self, user_id: str) -> bool:
        with self._session() as session:
            row = session.get(UserRow, user_id)
            if row is None:
                return False
            session.delete(row)
            return True

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def create_transaction(
        self,
        user_id: str,
        name: str,
        amount: Decimal,
        category: Category,
        date: datetime,
    ) -> TransactionRecord:
        with self._session() as session:
            row = TransactionRow(
                user_id=user_id,
                name=name,
                amount=amount,
                category=category,
                date=date,
            )
            session.add(row)
            session.flush()
            return _to_transaction_record(row)

    async def update_transaction(
        self,
        transaction_id: str,
        user_id: str,
        name: str,
        amount: Decimal,
        category: Category,
        date: datetime,
    ) -> Optional[TransactionRecord]:
        with self._session() as session:
            row = session.scalars(
                select(TransactionRow).where(
                    TransactionRow.id == transaction_id,
                    TransactionRow.user_id == user_id,
                )
            ).first()
            if row is None:
                return None
            row.name = name
            row.amount = amount
            row.category = category
            row.date = date
            row.updated_at = utcnow()
            session.flush()
            return _to_transaction_record(row)

    async def delete_transaction(self, transaction_id: str, user_id: str) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(TransactionRow).where(
                    TransactionRow.id == transaction_id,
                    TransactionRow.user_id == user_id,
                )
            )
            return result.rowcount > 0

    async def list_transactions(
        self,
        user_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[TransactionRecord]:
        stmt = select(TransactionRow).where(TransactionRow.user_id == user_id)
        if date_from is not None:
            stmt = stmt.where(TransactionRow.date >= date_from)
        if date_to is not None:
            stmt = stmt.where(TransactionRow.date <= date_to)
        stmt = stmt.order_by(TransactionRow.date.desc(), TransactionRow.created_at.desc())

        with self._session() as session:
            return [_to_transaction_record(row) for row in session.scalars(stmt)]

    async def sum_amount(
        self,
        user_id: str,
        date_from: datetime,
        date_to: datetime,
    ) -> Decimal:
        stmt = select(func.sum(TransactionRow.amount)).where(
            TransactionRow.user_id == user_id,
            TransactionRow.date >= date_from,
            TransactionRow.date <= date_to,
        )
        with self._session() as session:
            total = session.execute(stmt).scalar()
        if total is None:
            return Decimal("0")
        return Decimal(str(total)).quantize(Decimal("0.01"))
