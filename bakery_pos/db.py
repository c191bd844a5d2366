from sqlmodel import SQLModel, create_engine, Session, select
from sqlalchemy import event
import logging
import os

# Models (imported for table registration only)
from .models import Product, Category
from .models_customizations import (
    ProductOption, ProductOptionValue, ProductVariant,
    ProductAddon, AddonOption, AddonSubOption,
)

log = logging.getLogger("bakery-pos.db")

# ---- Engine ----
DB_URL = os.getenv("BAKERY_POS_DB_URL", "sqlite:///bakery_pos.db")
IS_SQLITE = DB_URL.startswith("sqlite")

connect_args = {"check_same_thread": False, "timeout": 30} if IS_SQLITE else {}

engine = create_engine(
    DB_URL,
    echo=False,
    connect_args=connect_args,
    pool_pre_ping=True,
    pool_recycle=1800,
)

if IS_SQLITE:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragmas(dbapi_connection, connection_record):
        cur = dbapi_connection.cursor()
        # WAL: catalog reads never wait on the seeding writer
        cur.execute("PRAGMA journal_mode=WAL;")
        cur.execute("PRAGMA busy_timeout=30000;")
        cur.close()

# ---- Schema ----
def create_db_and_tables():
    SQLModel.metadata.create_all(engine)

# ---- Sessions: FastAPI dependency ----
def get_session_dep():
    """FastAPI dependency; the session is always closed."""
    with Session(engine, expire_on_commit=False) as session:
        yield session

# ---- Seed helpers ----
def _add(session: Session, row):
    session.add(row)
    session.flush()
    return row


def _add_options(session: Session, product: Product, spec: dict) -> dict:
    """spec: {"Size": [("Small", 0), ("Large", 5000)], ...} -> {(option, value): value_id}"""
    ids = {}
    for pos, (name, values) in enumerate(spec.items()):
        opt = _add(session, ProductOption(product_id=product.id, name=name, position=pos))
        for vpos, (value, delta) in enumerate(values):
            v = _add(session, ProductOptionValue(
                option_id=opt.id, value=value, price_adjustment_cents=delta, position=vpos,
            ))
            ids[(name, value)] = v.id
    return ids


def _add_addon(session: Session, product: Product, name: str, options: list, **kw) -> ProductAddon:
    addon = _add(session, ProductAddon(product_id=product.id, name=name, **kw))
    for pos, opt in enumerate(options):
        subs = opt.pop("sub_options", [])
        o = _add(session, AddonOption(addon_id=addon.id, position=pos, **opt))
        for spos, (sname, sprice) in enumerate(subs):
            session.add(AddonSubOption(addon_option_id=o.id, name=sname, price_cents=sprice, position=spos))
    return addon


def seed_if_empty():
    """Minimal bakery catalog; one session, closed on exit."""
    with Session(engine) as session:
        if session.exec(select(Product)).first():
            return

        cakes = _add(session, Category(name="Cakes", slug="cakes", color_hex="#f59e0b"))
        flowers = _add(session, Category(name="Flowers", slug="flowers", color_hex="#ec4899"))
        sets = _add(session, Category(name="Gift Sets", slug="sets", color_hex="#8b5cf6"))

        # cake: size x flavour, every combination has its own variant price
        cake = _add(session, Product(name="Celebration Cake", sku="CK-001", price_cents=15000, category_id=cakes.id))
        vals = _add_options(session, cake, {
            "Size": [("Small", 0), ("Large", 5000)],
            "Flavour": [("Chocolate", 0), ("Vanilla", 1000)],
        })
        for size, flavour, price in (
            ("Small", "Chocolate", 15000),
            ("Small", "Vanilla", 16000),
            ("Large", "Chocolate", 20000),
            ("Large", "Vanilla", 21000),
        ):
            session.add(ProductVariant(
                product_id=cake.id,
                sku=f"CK-001-{size[0]}{flavour[0]}",
                price_cents=price,
                value_ids=[vals[("Size", size)], vals[("Flavour", flavour)]],
            ))
        _add_addon(session, cake, "Cake Topper", [
            {"name": "Message topper", "price_cents": 1500, "allows_custom_text": True, "max_text_length": 30},
        ])

        bouquet = _add(session, Product(name="Rose Bouquet", sku="FL-001", price_cents=25000, category_id=flowers.id))
        _add_options(session, bouquet, {"Colour": [("Red", 0), ("White", 0), ("Pink", 2000)]})
        _add_addon(session, bouquet, "Wrapping", [
            {"name": "Classic wrap", "price_cents": 0},
            {"name": "Luxury wrap", "price_cents": 3000},
        ], required=True, min_selections=1, max_selections=1)
        _add_addon(session, bouquet, "Extras", [
            {"name": "Balloon", "price_cents": 2000, "sub_options": [("Heart shape", 500), ("Star shape", 500)]},
            {"name": "Chocolate box", "price_cents": 4000},
            {"name": "Greeting card", "price_cents": 1000, "allows_custom_text": True, "max_text_length": 120},
        ], max_selections=2, position=1)

        session.add(Product(name="Cake & Roses Gift Set", sku="GS-001", price_cents=40000, category_id=sets.id))
        session.add(Product(
            name="Custom Cake", sku="CK-CUSTOM", price_cents=0, category_id=cakes.id,
            allow_custom_price=True, allow_custom_images=True, requires_design=True,
        ))
        session.commit()
        log.info("catalog seeded")
