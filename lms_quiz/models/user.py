"""
User model - only the credit balance is owned by this service
"""
from sqlalchemy import Column, Integer, Numeric, String, TIMESTAMP, Uuid, func
from lms_quiz.database import Base
import uuid


class User(Base):
    """
    Users table - profile rows are managed by the auth backend
    """
    __tablename__ = "users"
    
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(100))
    bitcred_balance = Column(Numeric(10, 2, asdecimal=False), default=0)
    xp = Column(Integer, default=0)
    created_at = Column(TIMESTAMP, server_default=func.now())
    
    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, balance={self.bitcred_balance})>"
