#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Custom exceptions for ecs-scheduler
"""


class SchedulerBaseException(Exception):
    """
    Top class for ECS Scheduler Exceptions
    """

    def __init__(self, msg, *args):
        super().__init__(msg, *args)


class SchedulerConfigError(SchedulerBaseException):
    """
    Exception when a setting is missing or invalid, raised before any API call is made.
    """

    def __init__(self, field_name, reason="is required", *args):
        self.field_name = field_name
        super().__init__(f"{field_name} {reason}", *args)


class ProcessRunNotImplemented(SchedulerBaseException):
    """
    Running one-off processes (attached or detached) is not supported by the ECS manager.
    """


class LoadBalancerProvisioningError(SchedulerBaseException):
    """
    The load balancer exists but could not be fully configured.
    Retrying the same creation converges it.
    """

    def __init__(self, msg, load_balancer=None, *args):
        self.load_balancer = load_balancer
        super().__init__(msg, *args)


class DnsRegistrationError(LoadBalancerProvisioningError):
    """
    The load balancer was created but its DNS record could not be set / removed.
    """


class OperationCancelled(SchedulerBaseException):
    """
    The caller cancelled the request context.
    """


class DeadlineExceeded(OperationCancelled):
    """
    The deadline of the request context passed.
    """


class InvalidAppDefinition(SchedulerBaseException):
    """
    The App definition file is not conform.
    """
