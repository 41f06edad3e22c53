from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .survey import SurveyInstance, SurveyResponse, ResponseContact  # noqa: F401
from .draw import DrawRecord, DrawNotification  # noqa: F401

__all__ = [
    "Base",
    "SurveyInstance",
    "SurveyResponse",
    "ResponseContact",
    "DrawRecord",
    "DrawNotification",
]
