from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, func
from . import Base


def utcnow():
    return datetime.now(timezone.utc)


class Post(Base):
    __tablename__ = 'posts'
    id = Column(Integer, primary_key=True, index=True)
    content = Column(Text, nullable=False)
    username = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)
    # plain column: replies outlive their parent
    parent_id = Column(Integer, nullable=True, index=True)
    likes = Column(Integer, nullable=False, default=0, server_default='0')
