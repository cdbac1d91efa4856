#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Constants for the ECS processes management
"""

MB = 1024 * 1024

DESCRIBE_SERVICES_MAX = 10
DESCRIBE_TASKS_MAX = 100

SERVICE_STATUS_ACTIVE = "ACTIVE"

SERVICE_NOT_FOUND_MESSAGES = (
    "Service was not ACTIVE.",
    "Service not found.",
    "Could not find returned type com.amazon.madison.cmb#CMServiceNotActiveException in model",
    "Could not find returned type com.amazon.madison.cmb#CMServiceNotFoundException in model",
)
SERVICE_NOT_FOUND_CODES = (
    "ServiceNotFoundException",
    "ServiceNotActiveException",
)

# Group of the tasks started by a service, followed by the service name
SERVICE_TASK_GROUP_PREFIX = "service:"
