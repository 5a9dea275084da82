from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, DateTime, func

Base = declarative_base()


class Image(Base):
    __tablename__ = 'images'

    repository = Column(String, primary_key=True)
    tag = Column(String, primary_key=True)
    digest = Column(String, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now())


class Dependency(Base):
    __tablename__ = 'dependencies'

    source_digest = Column(String, primary_key=True)
    base_ref = Column(String, nullable=False, index=True)
    base_digest = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class OwnedService(Base):
    __tablename__ = 'owned_services'

    tag = Column(String, primary_key=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
