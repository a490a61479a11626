"""Metrics Worker: Application Insights KQL Queries.

One summarize query per telemetry category, binned into 5-minute buckets.
`{lookback}` is filled with a KQL timespan literal such as `60m`.
"""

REQUESTS_QUERY = """
AppRequests
| where TimeGenerated > ago({lookback})
| summarize
    avg_duration = avg(DurationMs),
    p95_duration = percentile(DurationMs, 95),
    p99_duration = percentile(DurationMs, 99),
    request_count = count(),
    success_count = countif(Success == true),
    failure_count = countif(Success == false)
    by bin(TimeGenerated, 5m), Name, ResultCode
| order by TimeGenerated desc
"""

DEPENDENCIES_QUERY = """
AppDependencies
| where TimeGenerated > ago({lookback})
| summarize
    avg_duration = avg(DurationMs),
    call_count = count(),
    success_count = countif(Success == true),
    failure_count = countif(Success == false)
    by bin(TimeGenerated, 5m), Name, Type, Target
| order by TimeGenerated desc
"""

EXCEPTIONS_QUERY = """
AppExceptions
| where TimeGenerated > ago({lookback})
| summarize
    exception_count = count()
    by bin(TimeGenerated, 5m), ExceptionType, Message
| order by TimeGenerated desc
"""

CUSTOM_METRICS_QUERY = """
AppMetrics
| where TimeGenerated > ago({lookback})
| summarize
    avg_value = avg(Sum)
    by bin(TimeGenerated, 5m), Name
| order by TimeGenerated desc
"""


def render(query: str, lookback_minutes: int) -> str:
    """Substitute the lookback window into a query template."""
    return query.format(lookback=f"{int(lookback_minutes)}m")
