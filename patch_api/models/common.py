from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntId = BigInteger().with_variant(Integer, "sqlite")

class IntIdMixin:
    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
