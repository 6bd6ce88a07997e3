from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from patch_api.db.session import Base
from patch_api.models.common import BigIntId, IntIdMixin

class AdvisoryType(Base):
    __tablename__ = "advisory_type"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

class AdvisoryMetadata(Base, IntIdMixin):
    __tablename__ = "advisory_metadata"
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    synopsis: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    public_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    advisory_type_id: Mapped[int] = mapped_column(Integer, ForeignKey("advisory_type.id"), nullable=False)
    severity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

class AdvisoryAccountData(Base):
    __tablename__ = "advisory_account_data"
    advisory_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("advisory_metadata.id"), primary_key=True)
    rh_account_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("rh_account.id"), primary_key=True)
    systems_applicable: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
