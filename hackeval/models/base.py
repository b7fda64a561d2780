from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase
from hackeval.db.metadata import metadata_obj

# Use BigInteger by default, with a SQLite-safe Integer variant for autoincrement PKs.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    metadata = metadata_obj
