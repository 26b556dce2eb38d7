import uuid
from sqlalchemy import Column, String, Uuid
from shared.config.database import Base

class Customer(Base):
    """Owned by the customer subsystem; orders only reference and display it."""
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name = Column(String(255), nullable=False)
    phone_number = Column(String(20), nullable=True)
