import importlib
import os

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from orderstore.config import settings
from orderstore.utils.logging import get_logger

log = get_logger("orderstore.db", "DB")

DATABASE_URL = settings.DATABASE_URL
IS_SQLITE = DATABASE_URL.startswith("sqlite")

connect_args = {}
if IS_SQLITE:
    connect_args = {"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT}

engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


if IS_SQLITE:

    @event.listens_for(engine, "connect")
    def _sqlite_on_connect(dbapi_connection, connection_record):
        # take over transaction control from pysqlite so BEGIN IMMEDIATE and SAVEPOINT work
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_on_begin(conn):
        # writers queue on the database lock instead of deadlocking on upgrade
        conn.exec_driver_sql("BEGIN IMMEDIATE")


MODEL_MODULES = [
    "orderstore.models.user",
    "orderstore.models.product",
    "orderstore.models.inventory",
    "orderstore.models.cart",
    "orderstore.models.cart_item",
    "orderstore.models.order",
    "orderstore.models.payment",
    "orderstore.models.shipment",
    "orderstore.models.coupon",
]

ROLE_NAMES = ["customer", "admin", "vendor"]
ORDER_STATUS_NAMES = [
    "pending",
    "paid",
    "processing",
    "shipped",
    "delivered",
    "cancelled",
    "refunded",
]
PAYMENT_METHOD_NAMES = ["credit_card", "paypal", "bank_transfer", "cash_on_delivery"]
ORDER_COUNTER_NAME = "order_number"
ADMIN_EMAIL = "admin@example.com"


def import_models():
    for mod in MODEL_MODULES:
        importlib.import_module(mod)


def seed_reference_data(session):
    """
    Insert the lookup rows every store needs. Idempotent.

    Order statuses are inserted in lifecycle order so their ids are 1..7,
    with 'pending' as id 1.
    """
    from orderstore.models.order import OrderCounter, OrderStatus
    from orderstore.models.payment import PaymentMethod
    from orderstore.models.user import Role, User, UserRole

    for name in ROLE_NAMES:
        if not session.query(Role).filter(Role.role_name == name).first():
            session.add(Role(role_name=name))
    for name in ORDER_STATUS_NAMES:
        if not session.query(OrderStatus).filter(OrderStatus.status_name == name).first():
            session.add(OrderStatus(status_name=name))
    for name in PAYMENT_METHOD_NAMES:
        if not session.query(PaymentMethod).filter(PaymentMethod.method_name == name).first():
            session.add(PaymentMethod(method_name=name))
    if not session.get(OrderCounter, ORDER_COUNTER_NAME):
        session.add(OrderCounter(name=ORDER_COUNTER_NAME, value=0))
    session.flush()

    admin = session.query(User).filter(User.email == ADMIN_EMAIL).first()
    if not admin:
        admin = User(
            email=ADMIN_EMAIL,
            password_hash="<hashed_password_here>",
            first_name="Site",
            last_name="Admin",
            phone="+000000000",
        )
        session.add(admin)
        session.flush()
        admin_role = session.query(Role).filter(Role.role_name == "admin").one()
        session.add(UserRole(user_id=admin.id, role_id=admin_role.id))
    session.flush()


def init_db(reset: bool = None):
    """
    Initialize DB schema and reference rows.

    When `reset` is true (or RESET_DB is 1/true/yes) the schema is dropped
    and recreated first.
    """
    if reset is None:
        reset = os.environ.get("RESET_DB", "false").lower() in ("1", "true", "yes")

    import_models()

    if reset:
        log.info("Resetting database schema")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)

    s = SessionLocal()
    try:
        with s.begin():
            seed_reference_data(s)
    finally:
        s.close()
    log.info("Database initialized")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
