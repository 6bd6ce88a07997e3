from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from patch_api.db.session import Base
from patch_api.models.common import BigIntId

class SystemAdvisory(Base):
    __tablename__ = "system_advisories"
    system_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("system_platform.id"), primary_key=True)
    advisory_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("advisory_metadata.id"), primary_key=True)
    rh_account_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("rh_account.id"), nullable=False)
