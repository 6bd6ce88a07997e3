from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from patch_api.db.session import Base
from patch_api.models.common import BigIntId, IntIdMixin

class PackageName(Base, IntIdMixin):
    __tablename__ = "package_name"
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)

class PackageAccountData(Base):
    __tablename__ = "package_account_data"
    package_name_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("package_name.id"), primary_key=True)
    rh_account_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("rh_account.id"), primary_key=True)
    systems_installed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    systems_updatable: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
