import uuid
from sqlalchemy import Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from patch_api.db.session import Base
from patch_api.models.common import IntIdMixin

class InventoryTag(Base, IntIdMixin):
    __tablename__ = "inventory_tags"
    __table_args__ = (Index("ix_inventory_tags_lookup", "inventory_id", "namespace", "key"),)

    inventory_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    namespace: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str | None] = mapped_column(String(255), nullable=True)
