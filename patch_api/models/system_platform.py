import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from patch_api.db.session import Base
from patch_api.models.common import BigIntId, IntIdMixin


class SystemPlatform(Base, IntIdMixin):
    __tablename__ = "system_platform"

    inventory_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)
    rh_account_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("rh_account.id"), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_evaluation: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_upload: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    advisory_sec_count_cache: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    advisory_bug_count_cache: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    advisory_enh_count_cache: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    advisory_other_count_cache: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    packages_installed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    packages_updatable: Mapped[int | None] = mapped_column(Integer, nullable=True)
    opt_out: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    stale: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    system_profile: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
