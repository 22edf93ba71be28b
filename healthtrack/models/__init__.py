from .activity import (
    DailyActivityRecord,
    MonthlyRollupRecord,
    DirtyMonthRecord,
)
