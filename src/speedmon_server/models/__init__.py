"""SQLAlchemy ORM models."""

# Import all models so Base.metadata registers them for create_all().
from speedmon_server.models.alert import AlertConfig as AlertConfig
from speedmon_server.models.alert import AlertHistory as AlertHistory
from speedmon_server.models.baseline import DeviceBaseline as DeviceBaseline
from speedmon_server.models.result import ConnectionEvent as ConnectionEvent
from speedmon_server.models.result import SpeedResult as SpeedResult
