"""
playfield/orm/user.py
User accounts. Owned by the identity collaborator; the scoring core only
references users by id.
"""
from enum import Enum

from sqlalchemy import Column, String, Boolean

from playfield.orm.base import BaseModel


class UserRole(str, Enum):
    """Platform-level roles"""
    admin = "admin"
    player = "player"
    scorer = "scorer"


class User(BaseModel):
    __tablename__ = "users"
    
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(200), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.player.value, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    
    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"
