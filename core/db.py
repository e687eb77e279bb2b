# core/db.py
from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Sequence
from sqlalchemy import bindparam, create_engine, event, text as sa_text
from sqlalchemy.engine import Connection, Engine

from core.schema_registry import auto_discover, run_all

SCHEMAS_DIR = Path(__file__).resolve().parents[1] / "schemas"

def get_engine(db_url: str) -> Engine:
    if db_url.startswith("sqlite:///"):
        db_file = db_url.replace("sqlite:///", "")
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(db_url, future=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _sqlite_on_connect)
        event.listen(engine, "begin", _sqlite_begin_immediate)
    return engine

def _sqlite_on_connect(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    # writers wait for each other instead of failing fast during fan-out
    cur.execute("PRAGMA busy_timeout = 10000")
    cur.close()
    # pysqlite would otherwise defer BEGIN until the first INSERT/UPDATE
    dbapi_conn.isolation_level = None

def _sqlite_begin_immediate(conn):
    # take the write lock up front so read-then-write steps cannot interleave
    conn.exec_driver_sql("BEGIN IMMEDIATE")

def init_db(engine: Engine) -> None:
    # 1) import every schemas/*.py so their @register decorators run
    auto_discover(SCHEMAS_DIR, root_package=None)

    # 2) run all registered ensure_*_schema(engine) functions
    run_all(engine)

def fetch_rows(conn: Connection, sql: str, params: Optional[dict] = None,
               expanding: Sequence[str] = ()) -> List[dict]:
    """Run a SELECT and return plain dict rows. `expanding` names IN-list params."""
    stmt = sa_text(sql)
    if expanding:
        stmt = stmt.bindparams(*[bindparam(name, expanding=True) for name in expanding])
    return [dict(r._mapping) for r in conn.execute(stmt, params or {}).fetchall()]
