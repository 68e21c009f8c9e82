from reelsmith.models.base import Base
from reelsmith.models.job import JobRecord

__all__ = [
    "Base",
    "JobRecord",
]
