"""
Camada de Banco de Dados
========================

- ✅ Engine configurado por ambiente (PostgreSQL em produção, SQLite local/testes)
- ✅ Sessões com rollback automático em erro
- ✅ Context manager para jobs agendados
- ✅ Health check simples para o painel de sistema
"""

import logging
import time
from contextlib import contextmanager
from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, NullPool, StaticPool

from liveshop.core.config import config

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════
# CONFIGURAÇÕES
# ═══════════════════════════════════════════════════════════

class DatabaseConfig:
    """Configurações centralizadas do banco de dados"""

    # Pool de Conexões - Produção
    PRODUCTION_POOL_SIZE = 20
    PRODUCTION_MAX_OVERFLOW = 20
    PRODUCTION_POOL_TIMEOUT = 10
    PRODUCTION_POOL_RECYCLE = 1800

    # Pool de Conexões - Desenvolvimento
    DEV_POOL_SIZE = 5
    DEV_MAX_OVERFLOW = 10
    DEV_POOL_TIMEOUT = 30
    DEV_POOL_RECYCLE = 3600


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def get_engine_config(url: str) -> dict:
    """
    Retorna configuração do engine baseada no ambiente

    SQLite não suporta pool de conexões nem SELECT ... FOR UPDATE; o lock por
    linha vira no-op e a serialização fica a cargo do version_id dos modelos.
    """
    if _is_sqlite(url):
        engine_kwargs = {
            "connect_args": {"check_same_thread": False},
            "echo": config.DEBUG,
        }
        if ":memory:" in url:
            engine_kwargs["poolclass"] = StaticPool
        return engine_kwargs

    if config.is_production:
        return {
            "poolclass": QueuePool,
            "pool_size": DatabaseConfig.PRODUCTION_POOL_SIZE,
            "max_overflow": DatabaseConfig.PRODUCTION_MAX_OVERFLOW,
            "pool_timeout": DatabaseConfig.PRODUCTION_POOL_TIMEOUT,
            "pool_recycle": DatabaseConfig.PRODUCTION_POOL_RECYCLE,
            "pool_pre_ping": True,
            "echo": False,
            "connect_args": {
                "connect_timeout": 10,
                "options": "-c statement_timeout=30000",
                "application_name": "liveshop_api",
            },
            "execution_options": {
                "isolation_level": "READ COMMITTED"
            }
        }
    elif config.is_test:
        return {
            "poolclass": NullPool,
            "echo": False,
        }
    else:
        return {
            "poolclass": QueuePool,
            "pool_size": DatabaseConfig.DEV_POOL_SIZE,
            "max_overflow": DatabaseConfig.DEV_MAX_OVERFLOW,
            "pool_timeout": DatabaseConfig.DEV_POOL_TIMEOUT,
            "pool_recycle": DatabaseConfig.DEV_POOL_RECYCLE,
            "pool_pre_ping": True,
            "echo": config.DEBUG,
        }


# ═══════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════

engine_config = get_engine_config(config.DATABASE_URL)
engine = create_engine(config.DATABASE_URL, **engine_config)


def configure_sqlite(sqlite_engine):
    """
    Ajustes do driver pysqlite.

    O driver abre transações por conta própria e quebra SAVEPOINT; os sweeps
    dependem de begin_nested(), então o BEGIN passa a ser emitido aqui.
    """

    @event.listens_for(sqlite_engine, "connect")
    def receive_connect(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        logger.debug("🔵 Nova conexão SQLite criada")

    @event.listens_for(sqlite_engine, "begin")
    def receive_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return sqlite_engine


if _is_sqlite(config.DATABASE_URL):
    configure_sqlite(engine)


# ═══════════════════════════════════════════════════════════
# SESSION MAKERS
# ═══════════════════════════════════════════════════════════

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False
)


def get_db():
    """
    Dependency para operações de escrita e leitura

    - ✅ Rollback em erro
    - ✅ Logging de exceções
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"❌ Erro na sessão: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


get_db_manager = contextmanager(get_db)

GetDBDep = Annotated[Session, Depends(get_db)]


# ═══════════════════════════════════════════════════════════
# HEALTH CHECK
# ═══════════════════════════════════════════════════════════

def check_database_health() -> dict:
    """
    Verifica conexão com o banco

    Returns:
        dict: Status de saúde com latência
    """
    started = time.time()
    try:
        with get_db_manager() as db:
            db.execute(text("SELECT 1")).scalar()
        return {
            "healthy": True,
            "latency_ms": round((time.time() - started) * 1000, 2),
        }
    except Exception as e:
        logger.error(f"❌ Database health check failed: {e}")
        return {
            "healthy": False,
            "error": str(e),
        }
