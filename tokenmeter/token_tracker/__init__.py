from tokenmeter.token_tracker.models import (
    PLAN_LADDER,
    PLAN_LIMITS,
    DailyUsageRecord,
    PlanType,
    SessionBlock,
    TokenCounts,
    parse_blocks,
    parse_daily,
)
from tokenmeter.token_tracker.session_tracker import SessionTracker, SessionTracking
from tokenmeter.token_tracker.burn_rate import BurnRateAnalytics, BurnRateAnalyzer
from tokenmeter.token_tracker.reset_time import (
    EnhancedResetTimeInfo,
    ResetSchedule,
    ResetTimeService,
)
from tokenmeter.token_tracker.limit_detector import (
    LimitDetectionConfig,
    TokenLimitDetection,
    TokenLimitDetector,
)
from tokenmeter.token_tracker.plan_manager import (
    PlanManager,
    PlanRecommendation,
    PlanState,
    PlanSwitchEvent,
    transition,
)
from tokenmeter.token_tracker.predictive import PredictionEngine, PredictionInfo
from tokenmeter.token_tracker.daily import DailySummary, summarize_daily

__all__ = [
    "PLAN_LADDER",
    "PLAN_LIMITS",
    "DailyUsageRecord",
    "PlanType",
    "SessionBlock",
    "TokenCounts",
    "parse_blocks",
    "parse_daily",
    "SessionTracker",
    "SessionTracking",
    "BurnRateAnalytics",
    "BurnRateAnalyzer",
    "EnhancedResetTimeInfo",
    "ResetSchedule",
    "ResetTimeService",
    "LimitDetectionConfig",
    "TokenLimitDetection",
    "TokenLimitDetector",
    "PlanManager",
    "PlanRecommendation",
    "PlanState",
    "PlanSwitchEvent",
    "transition",
    "PredictionEngine",
    "PredictionInfo",
    "DailySummary",
    "summarize_daily",
]
