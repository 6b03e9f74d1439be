"""
Database session management with connection pooling, transactions and health checks
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional, Dict, Any
from urllib.parse import urlparse

from sqlmodel import SQLModel, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError, DisconnectionError
from sqlalchemy import event

from journeyline.core.settings import Settings
import journeyline.db.base  # noqa: F401  registers tables on SQLModel.metadata

logger = logging.getLogger(__name__)


def to_async_url(database_url: str) -> str:
    """Rewrite a sync DB URL to its async driver equivalent"""
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


class DatabaseManager:
    """Database manager owning the engine, the session factory and transaction scopes"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.engine: Optional[AsyncEngine] = None
        self.async_session: Optional[async_sessionmaker] = None
        self._connection_stats = {
            "total_connections": 0,
            "active_connections": 0,
            "failed_connections": 0,
            "last_health_check": None,
            "health_status": "unknown"
        }

    def _prepare_database_url(self) -> str:
        """Prepare and validate database URL"""
        database_url = self.settings.DB_URL

        if not database_url:
            raise ValueError("DB_URL environment variable is required")

        parsed = urlparse(database_url)
        if not parsed.scheme:
            raise ValueError("Invalid database URL format")

        async_database_url = to_async_url(database_url)
        logger.info(f"Database URL prepared: {parsed.scheme}://{parsed.hostname}:{parsed.port}/{parsed.path.lstrip('/')}")
        return async_database_url

    def _create_engine(self) -> AsyncEngine:
        """Create SQLAlchemy async engine"""
        database_url = self._prepare_database_url()

        engine_config = {
            "url": database_url,
            "echo": self.settings.DB_ECHO,
            "pool_pre_ping": True,  # Validate connections before use
        }

        # Connection pooling for PostgreSQL
        if "postgresql" in database_url:
            engine_config.update({
                "pool_size": self.settings.DB_POOL_SIZE,
                "max_overflow": self.settings.DB_MAX_OVERFLOW,
                "pool_timeout": self.settings.DB_POOL_TIMEOUT,
                "pool_recycle": self.settings.DB_POOL_RECYCLE,
            })

        engine = create_async_engine(**engine_config)
        self._setup_event_listeners(engine)

        logger.info(f"Database engine created for {engine.dialect.name}")
        return engine

    def _setup_event_listeners(self, engine: AsyncEngine) -> None:
        """Setup SQLAlchemy event listeners for monitoring"""

        @event.listens_for(engine.sync_engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            self._connection_stats["total_connections"] += 1
            self._connection_stats["active_connections"] += 1
            logger.debug("New database connection established")

        @event.listens_for(engine.sync_engine, "close")
        def on_close(dbapi_connection, connection_record):
            self._connection_stats["active_connections"] = max(0, self._connection_stats["active_connections"] - 1)
            logger.debug("Database connection closed")

        @event.listens_for(engine.sync_engine, "handle_error")
        def on_error(exception_context):
            self._connection_stats["failed_connections"] += 1
            logger.error(f"Database connection error: {exception_context.original_exception}")

    async def initialize(self) -> None:
        """Initialize database engine and session factory"""
        try:
            self.engine = self._create_engine()
            self.async_session = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=True,
            )
            if self.settings.DB_CREATE_TABLES:
                await self.init_db()
            await self.health_check()
            logger.info("Database manager initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database manager: {e}")
            raise

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get database session with error handling"""
        if not self.async_session:
            raise RuntimeError("Database manager not initialized")

        start_time = time.time()
        session = self.async_session()
        creation_time = time.time() - start_time
        if creation_time > 1.0:
            logger.warning(f"Slow session creation: {creation_time:.2f}s")

        try:
            yield session
        except DisconnectionError:
            logger.error("Database disconnection detected")
            self._connection_stats["failed_connections"] += 1
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error(f"Database session error: {e}")
            self._connection_stats["failed_connections"] += 1
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """One unit of work: commits on normal exit, rolls back on any exception"""
        async with self.get_session() as session:
            try:
                async with session.begin():
                    yield session
            except Exception:
                logger.warning("Transaction rolled back due to error")
                raise

    async def health_check(self) -> Dict[str, Any]:
        """Database connectivity and pool health"""
        health_info = {
            "status": "healthy",
            "timestamp": time.time(),
            "connection_stats": self._connection_stats.copy(),
            "checks": {}
        }

        try:
            start_time = time.time()
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            connection_time = time.time() - start_time
            health_info["checks"]["connectivity"] = {
                "status": "pass",
                "response_time": f"{connection_time:.3f}s"
            }

            if self.engine and self.engine.dialect.name == "postgresql":
                pool = self.engine.pool
                health_info["checks"]["connection_pool"] = {
                    "status": "pass",
                    "size": pool.size(),
                    "checked_in": pool.checkedin(),
                    "checked_out": pool.checkedout(),
                    "overflow": pool.overflow(),
                }

            self._connection_stats["last_health_check"] = time.time()
            self._connection_stats["health_status"] = "healthy"

        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            health_info["status"] = "unhealthy"
            health_info["error"] = str(e)
            health_info["checks"]["connectivity"] = {
                "status": "fail",
                "error": str(e)
            }
            self._connection_stats["health_status"] = "unhealthy"

        return health_info

    async def init_db(self) -> None:
        """Create database tables"""
        if not self.engine:
            raise RuntimeError("Database engine not initialized")

        logger.info("Creating database tables...")
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Database tables created successfully")

    async def close(self) -> None:
        """Cleanup database connections"""
        if self.engine:
            logger.info("Closing database connections...")
            await self.engine.dispose()
            self.engine = None
            self.async_session = None
            logger.info("Database connections closed")

    def get_connection_stats(self) -> Dict[str, Any]:
        return self._connection_stats.copy()


# Global database manager instance
db_manager = DatabaseManager()


async def database_health_check() -> Dict[str, Any]:
    return await db_manager.health_check()


def get_database_stats() -> Dict[str, Any]:
    return db_manager.get_connection_stats()
