# Database models
from wxstation.models.sample import Sample

__all__ = ["Sample"]
