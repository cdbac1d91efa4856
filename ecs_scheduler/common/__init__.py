#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Most commonly used functions shared across all modules.
"""

from __future__ import annotations

import re

from ecs_scheduler.common.logging import LOG

ARN_RESOURCE_ID_RE = re.compile(r"^arn:aws(?:-[a-z]+)?:[\w-]+:[\w-]*:[0-9]*:[\w-]+/(?:.+/)?([^/]+)$")


def chunks(items: list, size: int):
    """
    Yields successive slices of items, each at most size long

    :param list items:
    :param int size:
    """
    if size < 1:
        raise ValueError("size must be a positive integer. Got", size)
    for index in range(0, len(items), size):
        yield items[index : index + size]


def resource_id_from_arn(arn: str) -> str:
    """
    Returns the last part of the ARN resource, i.e. the task ID for
    arn:aws:ecs:eu-west-1:012345678912:task/cluster-name/4c4d1a0e52c24f3a

    :param str arn:
    :raises ValueError: if the string is not a valid resource ARN
    """
    parts = ARN_RESOURCE_ID_RE.match(arn)
    if not parts:
        raise ValueError("Unable to find the resource ID from ARN", arn)
    return parts.group(1)


def attach_partial_results(error: Exception, results: list) -> None:
    """
    Sets what was gathered before the error on the exception, which is then re-raised as-is.
    """
    error.partial_results = results
