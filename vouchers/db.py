from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Base para modelos (la importa vouchers.main antes de create_all)
Base = declarative_base()


def _sqlite_pragmas(dbapi_conn, _):
    cur = dbapi_conn.cursor()
    try:
        cur.execute("PRAGMA journal_mode=WAL;")
        cur.execute("PRAGMA busy_timeout=60000;")
        cur.execute("PRAGMA foreign_keys=ON;")
        cur.execute("PRAGMA synchronous=NORMAL;")
    finally:
        cur.close()


def make_engine(url: str) -> Engine:
    """
    Engine con timeout alto para SQLite (contención ligera entre handlers).
    Para otros motores se usa la configuración por defecto de SQLAlchemy.
    """
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 60},
            pool_pre_ping=True,
        )
        event.listen(engine, "connect", _sqlite_pragmas)
        return engine
    return create_engine(url, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    # Registra los modelos en Base.metadata antes de crear tablas
    from .models import audit as _audit_models  # noqa: F401
    from .models import voucher as _voucher_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
