"""
CodeDeploy post-traffic hook for the contact form function.

Rolls the deployment back when the new version logged more Lambda errors
than MAX_ERRORS over the last few minutes of live traffic.
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone

import boto3

logger = logging.getLogger()
logger.setLevel(logging.INFO)

codedeploy = boto3.client('codedeploy')
cloudwatch = boto3.client('cloudwatch')

METRIC_WINDOW_MINUTES = 5


def _error_count(target_function):
    """Sum of the AWS/Lambda Errors metric over the metric window."""
    window_end = datetime.now(timezone.utc)
    window_start = window_end - timedelta(minutes=METRIC_WINDOW_MINUTES)

    stats = cloudwatch.get_metric_statistics(
        Namespace='AWS/Lambda',
        MetricName='Errors',
        Dimensions=[{'Name': 'FunctionName', 'Value': target_function}],
        StartTime=window_start,
        EndTime=window_end,
        Period=METRIC_WINDOW_MINUTES * 60,
        Statistics=['Sum']
    )

    datapoints = stats.get('Datapoints', [])
    logger.info(f"{len(datapoints)} error datapoints for {target_function}")
    return sum(point.get('Sum', 0) for point in datapoints)


def _report(event, status):
    codedeploy.put_lifecycle_event_hook_execution_status(
        deploymentId=event['DeploymentId'],
        lifecycleEventHookExecutionId=event['LifecycleEventHookExecutionId'],
        status=status
    )


def lambda_handler(event, context):
    """
    Compare the error count with MAX_ERRORS (default 0) and report to CodeDeploy.

    A Failed status triggers rollback to the previous version.
    """
    logger.info(f"Post-traffic hook for deployment {event.get('DeploymentId')}")

    try:
        target_function = os.environ.get('TARGET_FUNCTION')
        max_errors = int(os.environ.get('MAX_ERRORS', '0'))

        errors = _error_count(target_function)
        if errors > max_errors:
            raise RuntimeError(f"Error count too high: {errors} > {max_errors}")

    except Exception as e:
        logger.error(f"Error budget check failed: {e}", exc_info=True)
        _report(event, 'Failed')
        return {'statusCode': 500, 'body': json.dumps(f'Error budget check failed: {e}')}

    logger.info(f"{target_function} within error budget ({errors} <= {max_errors})")
    _report(event, 'Succeeded')
    return {'statusCode': 200, 'body': json.dumps('Error budget check passed')}
