from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime
from bakery.database import Base


class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    address = Column(String, nullable=True)
    phone = Column(String(30), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
