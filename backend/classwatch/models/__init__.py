from classwatch.models.monitoring import (
    MonitoringEvent,
    MonitoringAlert,
    MonitoringReport,
)
from classwatch.models.registry import (
    ClassRoom,
    ClassBatch,
    AttendanceSession,
    DirectoryUser,
    RoomEvent,
)
