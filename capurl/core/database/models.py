"""
SQLAlchemy Database Models

Stores:
- Signed URL salts (one active salt per scope identifier)

Only salts are stored. Expiry and digest travel inside the signed URL itself.
"""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()


class SignedUrlSalt(Base):
    """
    Active salt for a scope identifier.

    Overwritten on every issue (last store wins), deleted on complete.
    """
    __tablename__ = "signed_url_salts"

    scope_id = Column(String(255), primary_key=True)
    salt = Column(String(64), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<SignedUrlSalt(scope_id={self.scope_id!r}, created_at={self.created_at})>"
