from tirestore.db.base_class import Base

# Importing the models package registers every table with Base.metadata
import tirestore.models  # noqa: F401
