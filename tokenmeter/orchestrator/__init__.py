from tokenmeter.orchestrator.monitor import (
    AdvancedUsageAnalytics,
    MonitoringConfig,
    RiskAssessment,
    StatusSummary,
    UsageMonitor,
    analytics_to_dict,
)

__all__ = [
    "AdvancedUsageAnalytics",
    "MonitoringConfig",
    "RiskAssessment",
    "StatusSummary",
    "UsageMonitor",
    "analytics_to_dict",
]
