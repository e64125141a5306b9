"""SQLAlchemy-backed policy and role store (read-only)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    func,
    or_,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..core.errors import StorageUnavailable
from ..core.model import Permission, Policy, Role

logger = logging.getLogger("abacx.store.sql")

metadata = MetaData()

# ============================================================================
# ROLES
# ============================================================================
roles_table = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(64), nullable=False, unique=True),
    Column("label", String(128), nullable=True),
    Column("description", Text, nullable=True),
    Column("index", Integer, nullable=False, default=0),
    Column("is_default", Boolean, nullable=False, default=False),
    Column("is_super_admin", Boolean, nullable=False, default=False),
)

# ============================================================================
# ROLE PERMISSIONS (static grants)
# ============================================================================
role_permissions_table = Table(
    "role_permissions",
    metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("permission", Text, nullable=False),
    PrimaryKeyConstraint("role_id", "permission"),
)

# ============================================================================
# POLICIES
# ============================================================================
policies_table = Table(
    "policies",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("effect", String(8), nullable=False),  # "allow" | "deny"
    Column("permission", Text, nullable=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=True),
    Column("condition", Text, nullable=True),  # serialized condition AST (JSON)
    Column("description", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

Index("idx_policies_role_permission", policies_table.c.role_id, policies_table.c.permission)

# ============================================================================
# USER ROLES
# ============================================================================
user_roles_table = Table(
    "user_roles",
    metadata,
    Column("user_id", String(64), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    PrimaryKeyConstraint("user_id", "role_id"),
)


@dataclass(frozen=True)
class SqlStoreConfig:
    """Connection settings for :class:`SqlPolicyStore`."""

    url: str  # e.g. "postgresql+asyncpg://..." | "sqlite+aiosqlite:///abacx.db"
    echo: bool = False
    pool_pre_ping: bool = True
    engine_options: Dict[str, Any] = field(default_factory=dict)


class SqlPolicyStore:
    """Reads policies and roles through SQLAlchemy's asyncio engine.

    Conditions are parsed once per loaded row. Any database error is raised
    as :class:`StorageUnavailable`; retries belong to the driver/pool.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    @classmethod
    def from_config(cls, config: SqlStoreConfig) -> "SqlPolicyStore":
        engine = create_async_engine(
            config.url,
            echo=config.echo,
            pool_pre_ping=config.pool_pre_ping,
            **config.engine_options,
        )
        return cls(engine)

    async def create_schema(self) -> None:
        """Create the tables if missing (local development and tests)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def load_policies(self, role_id: int, permission: Permission) -> List[Policy]:
        stmt = (
            select(policies_table)
            .where(
                policies_table.c.role_id == role_id,
                policies_table.c.permission == permission.value,
            )
            .order_by(policies_table.c.id)
        )
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).mappings().all()
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"failed to load policies for role {role_id}: {e}") from e
        logger.debug("abacx: %d policies for role=%s permission=%s", len(rows), role_id, permission)
        return [Policy.from_mapping(row) for row in rows]

    async def load_roles(self, subject_id: str) -> List[Role]:
        assigned = select(user_roles_table.c.role_id).where(user_roles_table.c.user_id == subject_id)
        stmt = (
            select(roles_table)
            .where(or_(roles_table.c.id.in_(assigned), roles_table.c.is_default.is_(True)))
            .order_by(roles_table.c["index"].desc(), roles_table.c.id)
        )
        try:
            async with self.engine.connect() as conn:
                role_rows = (await conn.execute(stmt)).mappings().all()
                ids = [row["id"] for row in role_rows]
                grants: Dict[int, List[str]] = {i: [] for i in ids}
                if ids:
                    perm_rows = await conn.execute(
                        select(role_permissions_table).where(role_permissions_table.c.role_id.in_(ids))
                    )
                    for row in perm_rows.mappings():
                        grants[row["role_id"]].append(row["permission"])
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"failed to load roles for subject {subject_id!r}: {e}") from e
        return [Role.from_mapping({**row, "permissions": grants[row["id"]]}) for row in role_rows]


__all__ = [
    "metadata",
    "roles_table",
    "role_permissions_table",
    "policies_table",
    "user_roles_table",
    "SqlStoreConfig",
    "SqlPolicyStore",
]
