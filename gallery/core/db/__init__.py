from gallery.core.db.base import Base, BaseModel

__all__ = ["Base", "BaseModel"]
