from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column
from patch_api.db.session import Base
from patch_api.models.common import IntIdMixin

class RhAccount(Base, IntIdMixin):
    __tablename__ = "rh_account"
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
