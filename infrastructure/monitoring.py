from typing import List

from stackgraph import ResourceNode, Stack
from infrastructure.config import (
    ALARM_EVALUATION_PERIODS,
    ALARM_PERIOD,
    CPU_ALARM_THRESHOLD,
    FREEABLE_MEMORY_ALARM_THRESHOLD,
)


def declare_database_alarms(
    stack: Stack,
    instance: ResourceNode,
    topic: ResourceNode
) -> List[ResourceNode]:
    """
    Declare CloudWatch alarms on the primary database instance

    Args:
        stack: Stack receiving the alarms
        instance: Database instance to watch
        topic: SNS topic notified on alarm and on missing data

    Returns:
        The alarm resources
    """
    dimensions = [{"Name": "DBInstanceIdentifier", "Value": instance.ref}]

    cpu_alarm = stack.declare(
        "AWS::CloudWatch::Alarm",
        {
            "AlarmDescription": f"Primary database CPU utilization is over {CPU_ALARM_THRESHOLD}%",
            "Namespace": "AWS/RDS",
            "MetricName": "CPUUtilization",
            "Unit": "Percent",
            "Statistic": "Average",
            "Period": ALARM_PERIOD,
            "EvaluationPeriods": ALARM_EVALUATION_PERIODS,
            "Threshold": CPU_ALARM_THRESHOLD,
            "ComparisonOperator": "GreaterThanOrEqualToThreshold",
            "Dimensions": dimensions,
            "AlarmActions": [topic.ref],
            "InsufficientDataActions": [topic.ref],
        },
        logical_id="DatabaseCPUAlarm"
    )

    # Memory alarm also notifies when the instance recovers
    memory_alarm = stack.declare(
        "AWS::CloudWatch::Alarm",
        {
            "AlarmDescription": "Primary database freeable memory is under 700MB",
            "Namespace": "AWS/RDS",
            "MetricName": "FreeableMemory",
            "Unit": "Bytes",
            "Statistic": "Average",
            "Period": ALARM_PERIOD,
            "EvaluationPeriods": ALARM_EVALUATION_PERIODS,
            "Threshold": FREEABLE_MEMORY_ALARM_THRESHOLD,
            "ComparisonOperator": "LessThanOrEqualToThreshold",
            "Dimensions": dimensions,
            "AlarmActions": [topic.ref],
            "InsufficientDataActions": [topic.ref],
            "OKActions": [topic.ref],
        },
        logical_id="DatabaseMemoryAlarm"
    )

    return [cpu_alarm, memory_alarm]
