from .activity import (
    ActivityScore,
    ActivityScorePatch,
    DailyActivity,
    MonthlyRollup,
    UserScoreSummary,
    DailyActivityCreate,
    DailyActivityUpdate,
    ActivityWriteResult,
    ActivityDeleteResult,
    MonthlyLeaderboard,
)
