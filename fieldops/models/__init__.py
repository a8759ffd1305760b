# SQLModel definitions, imported here to ensure metadata is populated for create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .customer import Customer  # noqa: F401
from .geo_location import GeoLocation  # noqa: F401
from .task import Task  # noqa: F401
from .assignments import TaskAssignee  # noqa: F401
from .activity import Activity  # noqa: F401
