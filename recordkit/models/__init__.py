"""ActiveRecord-style record classes.

Records provide object-relational mapping with the ActiveRecord pattern.
"""

# Re-export base classes for convenient imports
from recordkit.models.active_query import ActiveQuery
from recordkit.models.active_record import ActiveRecord
from recordkit.models.condition import AttributeMap, KeyList, ScalarKey
from recordkit.models.errors import (
    ActiveRecordError,
    ConfigurationError,
    PreconditionError,
)
from recordkit.models.relation import Relation, has_many, has_one

__all__ = [
    "ActiveQuery",
    "ActiveRecord",
    "ActiveRecordError",
    "AttributeMap",
    "ConfigurationError",
    "KeyList",
    "PreconditionError",
    "Relation",
    "ScalarKey",
    "has_many",
    "has_one",
]
