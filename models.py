from sqlalchemy import create_engine, Column, Integer, String, Float, DateTime, Boolean, Text, JSON
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from datetime import datetime, date
from decimal import Decimal
import logging
import uuid

logger = logging.getLogger(__name__)

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


# ========================================
# Auth tables (stand-in for the hosted auth schema)
# ========================================

class AuthUser(Base):
    """Identity record: the credential side of a user"""
    __tablename__ = 'auth_users'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False)
    encrypted_password = Column(Text, nullable=False)
    user_metadata = Column(JSON, default=dict)
    email_confirmed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AuthSession(Base):
    __tablename__ = 'auth_sessions'

    access_token = Column(String(64), primary_key=True)
    user_id = Column(String(36), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)


# ========================================
# Application tables
# ========================================

class Profile(Base):
    """Role and display attributes, 1:1 with AuthUser (same id)"""
    __tablename__ = 'profiles'

    id = Column(String(36), primary_key=True)
    user_type = Column(String(20), nullable=False)       # seller / vendor
    full_name = Column(String(200))
    company_name = Column(String(200))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Seller(Base):
    """Marks an AuthUser as a seller (same id)"""
    __tablename__ = 'sellers'

    id = Column(String(36), primary_key=True)
    full_name = Column(String(200))
    company_name = Column(String(200))
    email = Column(String(255))
    phone_number = Column(String(50))
    business_email = Column(String(255))
    business_phone = Column(String(50))
    address_line1 = Column(String(255))
    address_line2 = Column(String(255))
    city = Column(String(100))
    state = Column(String(50))
    zip_code = Column(String(20))
    country = Column(String(100))
    tax_id = Column(String(50))
    website = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow)


class Vendor(Base):
    """Supplier (or other partner) in a seller's vendor network"""
    __tablename__ = 'vendors'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    seller_id = Column(String(36), nullable=False)
    user_id = Column(String(36))                          # set once the vendor accepts the invitation
    vendor_code = Column(String(50))
    vendor_name = Column(String(255), nullable=False)
    vendor_type = Column(String(50), default='supplier')
    vendor_email = Column(String(255))
    vendor_phone = Column(String(50))
    email = Column(String(255))
    contact_name = Column(String(200))
    contact_person = Column(String(200))
    address = Column(Text)
    address_line1 = Column(String(255))
    address_line2 = Column(String(255))
    city = Column(String(100))
    state = Column(String(50))
    zip_code = Column(String(20))
    country = Column(String(100))
    tax_id = Column(String(50))
    vendor_status = Column(String(20), default='pending')  # pending, invited, accepted
    invitation_token = Column(String(36), unique=True)
    invitation_sent_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)


class Product(Base):
    __tablename__ = 'products'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    seller_id = Column(String(36), nullable=False)
    product_name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=False)
    description = Column(Text)
    unit_of_measure = Column(String(20), default='pcs')
    created_at = Column(DateTime, default=datetime.utcnow)


class ProductSupplier(Base):
    __tablename__ = 'product_suppliers'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    product_id = Column(String(36), nullable=False)
    vendor_id = Column(String(36), nullable=False)
    lead_time_days = Column(Integer, default=0)
    moq = Column(Integer, default=1)
    is_primary = Column(Boolean, default=False)


class SupplierPriceTier(Base):
    __tablename__ = 'supplier_price_tiers'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    product_supplier_id = Column(String(36), nullable=False)
    minimum_order_quantity = Column(Integer, default=1)
    unit_price = Column(Float, default=0.0)


class PurchaseOrder(Base):
    __tablename__ = 'purchase_orders'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    po_number = Column(String(50), nullable=False)
    seller_id = Column(String(36), nullable=False)
    supplier_id = Column(String(36), nullable=False)
    status = Column(String(30), default='draft')
    vendor_status = Column(String(30))
    notes = Column(Text)
    trade_terms = Column(String(100))
    subtotal = Column(Float, default=0.0)
    currency = Column(String(3), default='USD')
    requested_delivery_date = Column(String(20))
    goods_ready_date = Column(String(20))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PurchaseOrderItem(Base):
    __tablename__ = 'purchase_order_items'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    purchase_order_id = Column(String(36), nullable=False)
    product_id = Column(String(36))
    product_supplier_id = Column(String(36))
    price_tier_id = Column(String(36))
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, default=0.0)
    line_total = Column(Float, default=0.0)      # quantity * unit_price
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


class PurchaseOrderStatusHistory(Base):
    __tablename__ = 'purchase_order_status_history'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    purchase_order_id = Column(String(36), nullable=False)
    from_status = Column(String(30))
    to_status = Column(String(30))
    notes = Column(Text)
    changed_by = Column(String(36))
    created_at = Column(DateTime, default=datetime.utcnow)


class Transfer(Base):
    __tablename__ = 'transfers'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    seller_id = Column(String(36), nullable=False)
    transfer_number = Column(String(50))
    transfer_type = Column(String(20), nullable=False)   # in, transfer, out
    from_location = Column(String(255))
    to_location = Column(String(255))
    status = Column(String(20), default='completed')
    transfer_date = Column(String(20))
    actual_arrival = Column(String(20))
    purchase_order_id = Column(String(36))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TransferItem(Base):
    __tablename__ = 'transfer_items'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    transfer_id = Column(String(36), nullable=False)
    sku = Column(String(100), nullable=False)
    product_name = Column(String(255))
    quantity = Column(Integer, nullable=False)
    unit = Column(String(20))


def serialize_value(value):
    """Convert a column value into something jsonify can emit"""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_dict(row):
    """Convert a SQLAlchemy Row/RowMapping into a plain dict"""
    return {key: serialize_value(value) for key, value in dict(row._mapping).items()}


# Database Configuration
class DatabaseConfig:
    def __init__(self, database_url='sqlite:///marketplace.db'):
        self.database_url = database_url
        if database_url in ('sqlite://', 'sqlite:///:memory:'):
            # A single shared connection keeps the in-memory database alive across sessions
            self.engine = create_engine(
                database_url,
                echo=False,
                connect_args={'check_same_thread': False},
                poolclass=StaticPool
            )
        else:
            self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_tables(self):
        """Create all database tables"""
        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Database tables created successfully at: {self.database_url}")

    def get_session(self):
        """Get a database session"""
        return self.SessionLocal()


def init_database(database_url='sqlite:///marketplace.db'):
    """Initialize the database with tables"""
    db_config = DatabaseConfig(database_url)
    db_config.create_tables()
    return db_config
