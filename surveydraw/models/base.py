from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase

from surveydraw.db.metadata import metadata_obj

# SQLite only autoincrements INTEGER primary keys.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    metadata = metadata_obj
