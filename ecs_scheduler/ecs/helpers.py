#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

from __future__ import annotations

from botocore.exceptions import ClientError

from ecs_scheduler.ecs.ecs_params import (
    SERVICE_NOT_FOUND_CODES,
    SERVICE_NOT_FOUND_MESSAGES,
)


def is_service_not_found(error) -> bool:
    """
    ECS reports a missing service with different codes and messages depending on
    whether the service is draining, deleted or never existed. All of them mean the same to us.

    The messages are matched literally, ECS does not give a stable error code for all the cases.

    :param Exception error:
    :rtype: bool
    """
    if not isinstance(error, ClientError):
        return False
    details = error.response.get("Error", {})
    if details.get("Code") in SERVICE_NOT_FOUND_CODES:
        return True
    return details.get("Message") in SERVICE_NOT_FOUND_MESSAGES

