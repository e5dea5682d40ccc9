from sqlalchemy import MetaData

# Define naming convention for constraints
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}


def create_metadata() -> MetaData:
    """Fresh MetaData for one store; table names are configurable per store."""
    return MetaData(naming_convention=convention)
