"""
CodeDeploy pre-traffic hook for the contact form function.

Invokes the new version with preflight and wrong-method events before any
traffic shifts to it. Smoke tests never POST, so no mail is sent and no rate
limit slot is used.
"""

import json
import logging
import os

import boto3

logger = logging.getLogger()
logger.setLevel(logging.INFO)

codedeploy = boto3.client('codedeploy')
lambda_client = boto3.client('lambda')

# (method, expected statusCode)
SMOKE_TESTS = [
    ('OPTIONS', 200),
    ('GET', 405),
]


class SmokeTestFailure(Exception):
    """The new version answered a smoke test incorrectly."""
    pass


def _invoke(target_function, method):
    """Invoke the new version with a bare proxy event and return its response."""
    smoke_event = {
        'httpMethod': method,
        'headers': {'X-Forwarded-For': 'codedeploy-pre-traffic'},
        'body': None,
    }

    invocation = lambda_client.invoke(
        FunctionName=target_function,
        InvocationType='RequestResponse',
        Payload=json.dumps(smoke_event)
    )
    payload = json.loads(invocation['Payload'].read())
    logger.info(f"{method} smoke test returned {payload.get('statusCode')}")

    if invocation.get('FunctionError'):
        raise SmokeTestFailure(f"{method} raised {invocation['FunctionError']}: {payload}")
    if invocation.get('StatusCode') != 200:
        raise SmokeTestFailure(f"{method} invoke status {invocation.get('StatusCode')}")

    return payload


def _check(payload, method, expected_status):
    if payload.get('statusCode') != expected_status:
        raise SmokeTestFailure(
            f"{method} returned {payload.get('statusCode')}, expected {expected_status}"
        )

    cors_origin = (payload.get('headers') or {}).get('Access-Control-Allow-Origin')
    if cors_origin != '*':
        raise SmokeTestFailure(f"{method} response is missing CORS headers")


def _report(event, status):
    codedeploy.put_lifecycle_event_hook_execution_status(
        deploymentId=event['DeploymentId'],
        lifecycleEventHookExecutionId=event['LifecycleEventHookExecutionId'],
        status=status
    )


def lambda_handler(event, context):
    """
    Run the smoke tests and report Succeeded or Failed to CodeDeploy.

    A Failed status stops the deployment before any traffic shifts.
    """
    logger.info(f"Pre-traffic hook for deployment {event.get('DeploymentId')}")

    try:
        target_function = os.environ.get('TARGET_FUNCTION')
        if not target_function:
            raise SmokeTestFailure("TARGET_FUNCTION environment variable is not set")

        for method, expected_status in SMOKE_TESTS:
            _check(_invoke(target_function, method), method, expected_status)

    except Exception as e:
        logger.error(f"Smoke tests failed: {e}", exc_info=True)
        _report(event, 'Failed')
        return {'statusCode': 500, 'body': json.dumps(f'Smoke tests failed: {e}')}

    logger.info(f"All {len(SMOKE_TESTS)} smoke tests passed on {target_function}")
    _report(event, 'Succeeded')
    return {'statusCode': 200, 'body': json.dumps('Smoke tests passed')}
