from sqlalchemy import Column, String, DateTime, Text, UniqueConstraint
from sqlalchemy.sql import func

from shipmirror.models_sqlalchemy import Base


class SyncState(Base):
    """Per-client, per-family cursor state.

    ``cursor_value`` is the end of the last window whose fetch completed, so the
    next incremental run can start from it (minus the overlap margin).
    """

    __tablename__ = "sync_state"
    __table_args__ = (UniqueConstraint("client_id", "sync_family", name="uq_sync_state_client_family"),)

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), nullable=False, index=True)
    # e.g. "orders", "receiving"
    sync_family = Column(String(64), nullable=False)

    cursor_value = Column(DateTime(timezone=True), nullable=True)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
