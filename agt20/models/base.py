from decimal import Decimal

from sqlalchemy import Numeric
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class Amount(TypeDecorator):
    """Unsigned big integer stored as NUMERIC(78, 0), exposed as int"""

    impl = Numeric(precision=78, scale=0)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)
