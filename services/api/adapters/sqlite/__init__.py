# services/api/adapters/sqlite/__init__.py
from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
    create_engine,
    delete,
    event,
    exists,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)

# Retries for document_number races (unique constraint decides the winner)
DOCUMENT_NUMBER_RETRIES = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---- Engine (SQLite) with WAL & pragmas -------------------------------------

def _ensure_dir(path: str):
    d = os.path.dirname(path)
    if d and not os.path.isdir(d):
        os.makedirs(d, exist_ok=True)


def make_engine(db_url: str) -> Engine:
    # Create data dir if sqlite file
    if db_url.startswith("sqlite:///"):
        file_path = db_url.replace("sqlite:///", "", 1)
        _ensure_dir(file_path)

    engine = create_engine(db_url, future=True, pool_pre_ping=True)

    # Apply pragmas per-connection
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore
        if isinstance(dbapi_connection, sqlite3.Connection):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA busy_timeout=5000;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    return engine


# ---- Schema via SQLAlchemy Core ---------------------------------------------

metadata = MetaData()

projects = Table(
    "projects",
    metadata,
    Column("project_id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("owner_ref", String, nullable=True),
    Column("guest_ref", String, nullable=True),
    Column("created_at", DateTime, nullable=False, default=_utcnow),
    Column("updated_at", DateTime, nullable=False, default=_utcnow),
    # exactly one of owner_ref / guest_ref
    CheckConstraint(
        "(owner_ref IS NULL) <> (guest_ref IS NULL)",
        name="ck_projects_single_ownership",
    ),
)

documents = Table(
    "documents",
    metadata,
    Column("document_id", String, primary_key=True),
    Column("project_id", String, ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False),
    Column("document_number", Integer, nullable=False),
    Column("title", String, nullable=False, default=""),
    Column("document_type", String, nullable=False, default="text"),
    Column("is_open", Boolean, nullable=False, default=False),
    Column("text_content", Text, nullable=True),
    Column("drawing_content", Text, nullable=True),
    Column("created_at", DateTime, nullable=False, default=_utcnow),
    Column("updated_at", DateTime, nullable=False, default=_utcnow),
    UniqueConstraint("project_id", "document_number", name="uq_documents_project_number"),
    CheckConstraint("document_type IN ('text', 'drawing')", name="ck_documents_type"),
)

memberships = Table(
    "project_members",
    metadata,
    Column("project_id", String, ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False),
    Column("account_id", String, nullable=False),
    Column("role", String, nullable=False),
    Column("created_at", DateTime, nullable=False, default=_utcnow),
    Column("updated_at", DateTime, nullable=False, default=_utcnow),
    UniqueConstraint("project_id", "account_id", name="uq_members_project_account"),
    CheckConstraint("role IN ('owner', 'editor', 'viewer')", name="ck_members_role"),
)

accounts = Table(
    "accounts",
    metadata,
    Column("account_id", String, primary_key=True),
    Column("email", String, nullable=True),
    Column("display_name", String, nullable=True),
    Column("created_at", DateTime, nullable=False, default=_utcnow),
    Column("updated_at", DateTime, nullable=False, default=_utcnow),
)

Index("idx_projects_guest", projects.c.guest_ref)
Index("idx_projects_owner", projects.c.owner_ref)
Index("idx_documents_project", documents.c.project_id, documents.c.document_number)
Index("idx_members_account", memberships.c.account_id)
Index("idx_accounts_email", accounts.c.email)


# ---- Adapter implementation --------------------------------------------------

@dataclass(frozen=True)
class SqliteAdapter:
    engine: Engine

    @classmethod
    def from_url(cls, db_url: str = "sqlite:///data/workspace.db") -> "SqliteAdapter":
        eng = make_engine(db_url)
        metadata.create_all(eng)
        return cls(engine=eng)

    # ---------- helpers ----------

    @staticmethod
    def _one(conn: Connection, stmt) -> Optional[Dict[str, Any]]:
        row = conn.execute(stmt).mappings().first()
        return dict(row) if row else None

    @staticmethod
    def _all(conn: Connection, stmt) -> List[Dict[str, Any]]:
        return [dict(r) for r in conn.execute(stmt).mappings().all()]

    @staticmethod
    def _owner_count(conn: Connection, project_id: str) -> int:
        return conn.execute(
            select(func.count())
            .select_from(memberships)
            .where(and_(memberships.c.project_id == project_id, memberships.c.role == "owner"))
        ).scalar_one()

    # ---------- Projects ----------

    def create_project(
        self,
        project_id: str,
        name: str,
        owner_ref: Optional[str] = None,
        guest_ref: Optional[str] = None,
    ) -> Dict[str, Any]:
        if (owner_ref is None) == (guest_ref is None):
            raise ValueError("OWNERSHIP_REFS_INVALID")

        now = _utcnow()
        with self.engine.begin() as conn:
            conn.execute(
                insert(projects).values(
                    project_id=project_id,
                    name=name,
                    owner_ref=owner_ref,
                    guest_ref=guest_ref,
                    created_at=now,
                    updated_at=now,
                )
            )
            if owner_ref is not None:
                conn.execute(
                    insert(memberships).values(
                        project_id=project_id,
                        account_id=owner_ref,
                        role="owner",
                        created_at=now,
                        updated_at=now,
                    )
                )
            return self._one(conn, select(projects).where(projects.c.project_id == project_id))

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return self._one(conn, select(projects).where(projects.c.project_id == project_id))

    def list_projects_by_guest(self, guest_id: str) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return self._all(
                conn,
                select(projects)
                .where(projects.c.guest_ref == guest_id)
                .order_by(projects.c.created_at.desc()),
            )

    def list_projects_for_account(self, account_id: str) -> List[Dict[str, Any]]:
        q = (
            select(projects, memberships.c.role)
            .select_from(projects.join(memberships, memberships.c.project_id == projects.c.project_id))
            .where(memberships.c.account_id == account_id)
            .order_by(projects.c.created_at.desc())
        )
        with self.engine.connect() as conn:
            return self._all(conn, q)

    def find_unclaimed_projects(self, guest_id: str) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return self._all(
                conn,
                select(projects)
                .where(and_(projects.c.guest_ref == guest_id, projects.c.owner_ref.is_(None)))
                .order_by(projects.c.created_at.asc()),
            )

    def list_projects_missing_owner_membership(self, account_id: str) -> List[Dict[str, Any]]:
        has_owner_row = exists().where(
            and_(
                memberships.c.project_id == projects.c.project_id,
                memberships.c.account_id == account_id,
                memberships.c.role == "owner",
            )
        )
        with self.engine.connect() as conn:
            return self._all(
                conn,
                select(projects).where(and_(projects.c.owner_ref == account_id, ~has_owner_row)),
            )

    def claim_project(self, project_id: str, account_id: str, expected_guest_ref: str) -> bool:
        with self.engine.begin() as conn:
            res = conn.execute(
                update(projects)
                .where(
                    and_(
                        projects.c.project_id == project_id,
                        projects.c.owner_ref.is_(None),
                        projects.c.guest_ref == expected_guest_ref,
                    )
                )
                .values(owner_ref=account_id, guest_ref=None, updated_at=_utcnow())
            )
            return res.rowcount == 1

    def update_project(self, project_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        allowed = {k: v for k, v in updates.items() if k in {"name"}}
        with self.engine.begin() as conn:
            if allowed:
                conn.execute(
                    update(projects)
                    .where(projects.c.project_id == project_id)
                    .values(**allowed, updated_at=_utcnow())
                )
            return self._one(conn, select(projects).where(projects.c.project_id == project_id))

    def delete_project(self, project_id: str) -> bool:
        with self.engine.begin() as conn:
            # explicit child deletes; FK cascade is not enabled on every backend
            conn.execute(delete(documents).where(documents.c.project_id == project_id))
            conn.execute(delete(memberships).where(memberships.c.project_id == project_id))
            res = conn.execute(delete(projects).where(projects.c.project_id == project_id))
            return res.rowcount > 0

    # ---------- Documents ----------

    def create_document(
        self,
        project_id: str,
        title: str,
        document_type: str = "text",
        is_open: bool = False,
    ) -> Dict[str, Any]:
        for attempt in range(DOCUMENT_NUMBER_RETRIES):
            document_id = str(uuid4())
            now = _utcnow()
            try:
                with self.engine.begin() as conn:
                    found = conn.execute(
                        select(projects.c.project_id).where(projects.c.project_id == project_id)
                    ).first()
                    if not found:
                        raise ValueError("PROJECT_NOT_FOUND")

                    next_num = conn.execute(
                        select(func.coalesce(func.max(documents.c.document_number), 0) + 1)
                        .where(documents.c.project_id == project_id)
                    ).scalar_one()

                    conn.execute(
                        insert(documents).values(
                            document_id=document_id,
                            project_id=project_id,
                            document_number=int(next_num),
                            title=title,
                            document_type=document_type,
                            is_open=bool(is_open),
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    return self._one(conn, select(documents).where(documents.c.document_id == document_id))
            except IntegrityError:
                logger.info(
                    f"document_number race on project {project_id}, retrying ({attempt + 1})"
                )
        raise ValueError("DOCUMENT_NUMBER_CONFLICT")

    def get_document(self, project_id: str, document_number: int) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return self._one(
                conn,
                select(documents).where(
                    and_(
                        documents.c.project_id == project_id,
                        documents.c.document_number == int(document_number),
                    )
                ),
            )

    def list_documents(self, project_id: str) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return self._all(
                conn,
                select(documents)
                .where(documents.c.project_id == project_id)
                .order_by(documents.c.document_number.asc()),
            )

    def update_document(
        self,
        project_id: str,
        document_number: int,
        updates: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        allowed = {
            k: v for k, v in updates.items()
            if k in {"title", "is_open", "text_content", "drawing_content"}
        }
        where = and_(
            documents.c.project_id == project_id,
            documents.c.document_number == int(document_number),
        )
        with self.engine.begin() as conn:
            if allowed:
                conn.execute(update(documents).where(where).values(**allowed, updated_at=_utcnow()))
            return self._one(conn, select(documents).where(where))

    def delete_document(self, project_id: str, document_number: int) -> bool:
        with self.engine.begin() as conn:
            res = conn.execute(
                delete(documents).where(
                    and_(
                        documents.c.project_id == project_id,
                        documents.c.document_number == int(document_number),
                    )
                )
            )
            return res.rowcount > 0

    # ---------- Memberships ----------

    def get_membership(self, project_id: str, account_id: str) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return self._one(
                conn,
                select(memberships).where(
                    and_(memberships.c.project_id == project_id, memberships.c.account_id == account_id)
                ),
            )

    def list_memberships(self, project_id: str) -> List[Dict[str, Any]]:
        q = (
            select(memberships, accounts.c.email, accounts.c.display_name)
            .select_from(
                memberships.outerjoin(accounts, accounts.c.account_id == memberships.c.account_id)
            )
            .where(memberships.c.project_id == project_id)
            .order_by(memberships.c.created_at.asc())
        )
        with self.engine.connect() as conn:
            return self._all(conn, q)

    def insert_membership_if_absent(
        self,
        project_id: str,
        account_id: str,
        role: str,
    ) -> Tuple[Dict[str, Any], bool]:
        where = and_(memberships.c.project_id == project_id, memberships.c.account_id == account_id)
        now = _utcnow()
        try:
            with self.engine.begin() as conn:
                existing = self._one(conn, select(memberships).where(where))
                if existing:
                    return existing, False
                conn.execute(
                    insert(memberships).values(
                        project_id=project_id,
                        account_id=account_id,
                        role=role,
                        created_at=now,
                        updated_at=now,
                    )
                )
                return self._one(conn, select(memberships).where(where)), True
        except IntegrityError:
            # lost an insert race: the unique constraint means someone else created it
            existing = self.get_membership(project_id, account_id)
            if existing:
                return existing, False
            raise

    def update_membership_role(
        self,
        project_id: str,
        account_id: str,
        role: str,
        keep_last_owner: bool = True,
    ) -> Optional[Dict[str, Any]]:
        where = and_(memberships.c.project_id == project_id, memberships.c.account_id == account_id)
        with self.engine.begin() as conn:
            current = self._one(conn, select(memberships).where(where))
            if not current:
                return None
            if (
                keep_last_owner
                and current["role"] == "owner"
                and role != "owner"
                and self._owner_count(conn, project_id) <= 1
            ):
                raise ValueError("LAST_OWNER")
            conn.execute(update(memberships).where(where).values(role=role, updated_at=_utcnow()))
            return self._one(conn, select(memberships).where(where))

    def delete_membership(
        self,
        project_id: str,
        account_id: str,
        keep_last_owner: bool = True,
    ) -> bool:
        where = and_(memberships.c.project_id == project_id, memberships.c.account_id == account_id)
        with self.engine.begin() as conn:
            current = self._one(conn, select(memberships).where(where))
            if not current:
                return False
            if keep_last_owner and current["role"] == "owner" and self._owner_count(conn, project_id) <= 1:
                raise ValueError("LAST_OWNER")
            conn.execute(delete(memberships).where(where))
            return True

    # ---------- Accounts ----------

    def upsert_account(
        self,
        account_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        if email is not None:
            values["email"] = email.strip()
        if display_name is not None:
            values["display_name"] = display_name
        now = _utcnow()
        where = accounts.c.account_id == account_id

        try:
            with self.engine.begin() as conn:
                existing = self._one(conn, select(accounts).where(where))
                if existing:
                    if values:
                        conn.execute(update(accounts).where(where).values(**values, updated_at=now))
                else:
                    conn.execute(
                        insert(accounts).values(account_id=account_id, created_at=now, updated_at=now, **values)
                    )
                return self._one(conn, select(accounts).where(where))
        except IntegrityError:
            # concurrent first sign-in inserted the profile; apply our values on top
            with self.engine.begin() as conn:
                if values:
                    conn.execute(update(accounts).where(where).values(**values, updated_at=now))
                return self._one(conn, select(accounts).where(where))

    def get_account(self, account_id: str) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return self._one(conn, select(accounts).where(accounts.c.account_id == account_id))

    def find_account_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        needle = (email or "").strip().lower()
        if not needle:
            return None
        with self.engine.connect() as conn:
            return self._one(conn, select(accounts).where(func.lower(accounts.c.email) == needle))
