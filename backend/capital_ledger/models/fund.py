"""
Fund database model
"""
from sqlalchemy import Column, Integer, String, DateTime, BigInteger, Numeric
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from capital_ledger.db.base import Base


class Fund(Base):
    """Fund model"""
    
    __tablename__ = "funds"
    
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    gp_name = Column(String(255))
    fund_type = Column(String(100))
    vintage_year = Column(Integer)
    fund_size = Column(BigInteger)
    aum = Column(Numeric(18, 2), nullable=False, default=0)  # sum of funded commitments
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    
    # Relationships
    commitments = relationship("Commitment", back_populates="fund")
