from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from app.core.config import settings

# Opción de ejecución que pide abrir la transacción con lock de escritura (solo SQLite)
SQLITE_BEGIN_OPTION = "sqlite_begin"

# SQLSTATE de PostgreSQL para lock_timeout agotado (lock_not_available)
PG_LOCK_NOT_AVAILABLE = "55P03"


def _install_sqlite_transaction_control(engine: Engine) -> None:
    """
    pysqlite no emite BEGIN por sí mismo de forma fiable; tomamos el control
    para poder abrir las transacciones del motor con BEGIN IMMEDIATE.
    Solo aplica a bases en archivo (desarrollo / tests).
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        # WAL: las lecturas abiertas no bloquean el commit de un escritor
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        begin_stmt = conn.get_execution_options().get(SQLITE_BEGIN_OPTION, "BEGIN")
        conn.exec_driver_sql(begin_stmt)


def create_db_engine(database_url: str, lock_timeout_ms: int = settings.LOCK_TIMEOUT_MS) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # timeout del driver = espera máxima por el lock de la base
        connect_args = {"check_same_thread": False, "timeout": lock_timeout_ms / 1000}

    db_engine = create_engine(
        database_url,
        future=True,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    if db_engine.dialect.name == "sqlite":
        _install_sqlite_transaction_control(db_engine)

    return db_engine


def begin_locking_transaction(db: Session, lock_timeout_ms: int = settings.LOCK_TIMEOUT_MS) -> None:
    """
    Prepara la transacción actual de `db` para tomar locks exclusivos de fila
    con espera acotada. Debe llamarse antes de cualquier consulta en la transacción.
    """
    conn = db.connection(execution_options={SQLITE_BEGIN_OPTION: "BEGIN IMMEDIATE"})
    if conn.dialect.name == "postgresql":
        conn.exec_driver_sql(f"SET LOCAL lock_timeout = {int(lock_timeout_ms)}")


def is_lock_timeout(exc: OperationalError) -> bool:
    if getattr(exc.orig, "pgcode", None) == PG_LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(exc.orig)


# Engine: conexión a PostgreSQL (o SQLite en desarrollo / tests)
engine = create_db_engine(settings.DATABASE_URL)

# SessionLocal: lo que inyectaremos en los endpoints
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)

# Base: clase base para los modelos SQLAlchemy
Base = declarative_base()
