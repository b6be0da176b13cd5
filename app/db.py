import contextlib
import sqlite3
from decimal import Decimal
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


DEFAULT_TENANT_ID = "tenant-demo"

# Money travels as Decimal; SQLite stores it in REAL columns.
sqlite3.register_adapter(Decimal, str)


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    def executescript(self, sql: str):
        if self.backend != "postgres":
            return self._conn.executescript(sql)
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    @contextlib.contextmanager
    def transaction(self):
        """Commit the enclosed statements together, or roll all of them back."""
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()

    def close(self):
        self._conn.close()


def _split_sql_statements(sql: str) -> List[str]:
    statements = []
    current = []
    in_single = False
    in_double = False
    for ch in sql:
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == ";" and not in_single and not in_double:
            statements.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is not installed.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = False
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path, timeout=15)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


_COLUMN_TYPES = {
    "sqlite": {
        "pk": "INTEGER PRIMARY KEY AUTOINCREMENT",
        "money": "REAL",
        "ts": "TEXT",
    },
    "postgres": {
        "pk": "SERIAL PRIMARY KEY",
        "money": "NUMERIC(18, 2)",
        "ts": "TIMESTAMP",
    },
}

_LIFECYCLE = "lifecycle TEXT NOT NULL DEFAULT 'active' CHECK (lifecycle IN ('active','deleted'))"

SCHEMA_STATEMENTS: List[str] = [
    f"""
    CREATE TABLE IF NOT EXISTS sales_pos (
        id {{pk}},
        number TEXT NOT NULL,
        customer_name TEXT,
        amount {{money}} NOT NULL DEFAULT 0,
        currency TEXT NOT NULL DEFAULT 'VND',
        status TEXT NOT NULL DEFAULT 'DRAFT' CHECK (status IN ('DRAFT','ACTIVE','CLOSED')),
        created_by TEXT,
        {_LIFECYCLE},
        tenant_id TEXT NOT NULL,
        created_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (tenant_id, number)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS purchase_requests (
        id {{pk}},
        number TEXT NOT NULL,
        department TEXT,
        requestor_id TEXT NOT NULL,
        purpose TEXT,
        total_amount {{money}} NOT NULL DEFAULT 0,
        currency TEXT NOT NULL DEFAULT 'VND',
        status TEXT NOT NULL DEFAULT 'DRAFT',
        sales_po_id INTEGER REFERENCES sales_pos (id),
        version INTEGER NOT NULL DEFAULT 1,
        return_count INTEGER NOT NULL DEFAULT 0,
        {_LIFECYCLE},
        tenant_id TEXT NOT NULL,
        created_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (tenant_id, number)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS purchase_request_items (
        id {{pk}},
        purchase_request_id INTEGER NOT NULL REFERENCES purchase_requests (id),
        line_no INTEGER NOT NULL,
        description TEXT NOT NULL,
        quantity {{money}} NOT NULL,
        unit_price {{money}} NOT NULL DEFAULT 0,
        amount {{money}} NOT NULL DEFAULT 0,
        uom TEXT,
        manufacturer TEXT,
        specification TEXT,
        purchase_type TEXT,
        {_LIFECYCLE},
        tenant_id TEXT NOT NULL,
        created_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS pr_assignments (
        id {{pk}},
        purchase_request_id INTEGER NOT NULL REFERENCES purchase_requests (id),
        buyer_id TEXT NOT NULL,
        buyer_leader_id TEXT,
        scope TEXT NOT NULL CHECK (scope IN ('FULL','PARTIAL')),
        item_ids TEXT NOT NULL DEFAULT '[]',
        note TEXT,
        {_LIFECYCLE},
        tenant_id TEXT NOT NULL,
        created_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS rfqs (
        id {{pk}},
        number TEXT NOT NULL,
        purchase_request_id INTEGER NOT NULL REFERENCES purchase_requests (id),
        buyer_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'DRAFT' CHECK (status IN ('DRAFT','SENT','QUOTATION_RECEIVED','CLOSED')),
        {_LIFECYCLE},
        tenant_id TEXT NOT NULL,
        created_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (tenant_id, number),
        UNIQUE (tenant_id, purchase_request_id, buyer_id)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS quotations (
        id {{pk}},
        rfq_id INTEGER NOT NULL REFERENCES rfqs (id),
        supplier_id TEXT NOT NULL,
        supplier_name TEXT,
        total_amount {{money}} NOT NULL,
        currency TEXT NOT NULL DEFAULT 'VND',
        lead_time_days INTEGER,
        payment_terms TEXT,
        warranty TEXT,
        status TEXT NOT NULL DEFAULT 'DRAFT' CHECK (status IN ('DRAFT','VALID','REJECTED','SELECTED')),
        {_LIFECYCLE},
        tenant_id TEXT NOT NULL,
        created_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS supplier_selections (
        id {{pk}},
        purchase_request_id INTEGER NOT NULL REFERENCES purchase_requests (id),
        quotation_id INTEGER NOT NULL REFERENCES quotations (id),
        selected_by TEXT NOT NULL,
        selection_reason TEXT NOT NULL,
        over_budget_reason TEXT,
        is_over_budget INTEGER NOT NULL DEFAULT 0,
        {_LIFECYCLE},
        tenant_id TEXT NOT NULL,
        created_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (tenant_id, purchase_request_id),
        UNIQUE (tenant_id, quotation_id)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS budget_exceptions (
        id {{pk}},
        purchase_request_id INTEGER NOT NULL REFERENCES purchase_requests (id),
        supplier_selection_id INTEGER NOT NULL REFERENCES supplier_selections (id),
        pr_amount {{money}} NOT NULL,
        purchase_amount {{money}} NOT NULL,
        over_amount {{money}} NOT NULL,
        over_percent {{money}} NOT NULL,
        reason TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'PENDING' CHECK (status IN ('PENDING','APPROVED','REJECTED')),
        decided_by TEXT,
        decision_note TEXT,
        {_LIFECYCLE},
        tenant_id TEXT NOT NULL,
        created_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS payments (
        id {{pk}},
        purchase_request_id INTEGER NOT NULL REFERENCES purchase_requests (id),
        amount {{money}} NOT NULL,
        currency TEXT NOT NULL DEFAULT 'VND',
        status TEXT NOT NULL DEFAULT 'PENDING' CHECK (status IN ('PENDING','DONE','CANCELLED')),
        recorded_by TEXT,
        {_LIFECYCLE},
        tenant_id TEXT NOT NULL,
        created_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS status_events (
        id {pk},
        entity TEXT NOT NULL,
        entity_id INTEGER NOT NULL,
        action TEXT NOT NULL,
        from_status TEXT,
        to_status TEXT NOT NULL,
        actor_id TEXT,
        actor_role TEXT,
        reason TEXT,
        event_id TEXT,
        tenant_id TEXT NOT NULL,
        occurred_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS notifications (
        id {{pk}},
        event_id TEXT NOT NULL,
        type TEXT NOT NULL,
        recipient_role TEXT NOT NULL,
        recipient_id TEXT,
        purchase_request_id INTEGER,
        message TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{{{{}}}}',
        read_at {{ts}},
        {_LIFECYCLE},
        tenant_id TEXT NOT NULL,
        created_at {{ts}} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (tenant_id, event_id, recipient_role)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_pr_items_pr ON purchase_request_items (tenant_id, purchase_request_id)",
    "CREATE INDEX IF NOT EXISTS idx_pr_assignments_pr ON pr_assignments (tenant_id, purchase_request_id)",
    "CREATE INDEX IF NOT EXISTS idx_quotations_rfq ON quotations (tenant_id, rfq_id)",
    "CREATE INDEX IF NOT EXISTS idx_payments_pr ON payments (tenant_id, purchase_request_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events (tenant_id, entity, entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_role ON notifications (tenant_id, recipient_role)",
]

# Reverse dependency order.
SCHEMA_TABLES: List[str] = [
    "notifications",
    "status_events",
    "payments",
    "budget_exceptions",
    "supplier_selections",
    "quotations",
    "rfqs",
    "pr_assignments",
    "purchase_request_items",
    "purchase_requests",
    "sales_pos",
]


def render_schema(backend: str) -> List[str]:
    types = _COLUMN_TYPES["postgres" if backend == "postgres" else "sqlite"]
    return [statement.format(**types) for statement in SCHEMA_STATEMENTS]


def create_schema(db) -> None:
    for statement in render_schema(db.backend):
        db.execute(statement)
    db.commit()


def init_db():
    create_schema(get_db())
