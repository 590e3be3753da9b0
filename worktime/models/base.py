from worktime.models.shared.enums import Base

__all__ = ["Base"]
