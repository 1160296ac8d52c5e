from sqlalchemy import Column, Integer, String, Table
from sqlalchemy.dialects.postgresql import ARRAY

from .db import metadata

# No primary key: isbn is UNIQUE NOT NULL only.
books = Table(
    "library",
    metadata,
    Column("isbn", String(50), unique=True, nullable=False),
    Column("name", String(50), nullable=False),
    Column("authors", ARRAY(String(50)), nullable=False),
    Column("languages", ARRAY(String(50)), nullable=False),
    Column("countries", ARRAY(String(50)), nullable=False),
    Column("numberofpages", Integer, nullable=True),
    Column("releasedate", String(50), nullable=False),
)
