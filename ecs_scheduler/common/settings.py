#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module for the SchedulerSettings class
"""

from __future__ import annotations

from os import environ

import boto3
import yaml
from botocore.exceptions import ClientError
from compose_x_common.aws import get_assume_role_session, validate_iam_role_arn
from compose_x_common.compose_x_common import keyisset, set_else_none

from ecs_scheduler.common.logging import LOG
from ecs_scheduler.exceptions import SchedulerConfigError
from ecs_scheduler.lb.route53 import validate_zone_id
from ecs_scheduler.scheduler import DEFAULT_DELIMITER, DELIMITER_RE


def split_ids(value) -> list:
    """
    Subnets and security groups can be given as a list or as a comma separated string
    """
    if not value:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    raise TypeError("Expected a list or comma separated string. Got", type(value))


class SchedulerSettings:
    """
    Class to handle the settings of the ECS Scheduler and the boto3 session used for API calls.

    :ivar boto3.session.Session session:
    """

    cluster_arg = "Cluster"
    service_role_arg = "ServiceRole"
    vpc_arg = "VPC"
    zone_id_arg = "ZoneID"
    internal_sg_arg = "InternalSecurityGroupID"
    external_sg_arg = "ExternalSecurityGroupID"
    internal_subnets_arg = "InternalSubnetIDs"
    external_subnets_arg = "ExternalSubnetIDs"
    draining_timeout_arg = "ConnectionDrainingTimeout"
    delimiter_arg = "Delimiter"
    record_ttl_arg = "RecordTTL"
    logs_arg = "LogsStream"

    region_arg = "RegionName"
    profile_arg = "ProfileName"
    arn_arg = "RoleArn"

    default_draining_timeout = 30
    default_delimiter = DEFAULT_DELIMITER
    default_record_ttl = 60

    env_vars = {
        cluster_arg: "ECS_SCHEDULER_CLUSTER",
        service_role_arg: "ECS_SCHEDULER_SERVICE_ROLE",
        vpc_arg: "ECS_SCHEDULER_VPC",
        zone_id_arg: "ECS_SCHEDULER_ZONE_ID",
        internal_sg_arg: "ECS_SCHEDULER_INTERNAL_SG",
        external_sg_arg: "ECS_SCHEDULER_EXTERNAL_SG",
        internal_subnets_arg: "ECS_SCHEDULER_INTERNAL_SUBNETS",
        external_subnets_arg: "ECS_SCHEDULER_EXTERNAL_SUBNETS",
        logs_arg: "ECS_SCHEDULER_LOGS",
    }

    load_balanced_required = [
        cluster_arg,
        service_role_arg,
        zone_id_arg,
        internal_sg_arg,
        external_sg_arg,
        internal_subnets_arg,
        external_subnets_arg,
    ]

    def __init__(self, session=None, **kwargs):
        self.cluster = set_else_none(self.cluster_arg, kwargs)
        self.service_role = set_else_none(self.service_role_arg, kwargs)
        self.vpc = set_else_none(self.vpc_arg, kwargs)
        self.zone_id = set_else_none(self.zone_id_arg, kwargs)
        self.internal_security_group_id = set_else_none(self.internal_sg_arg, kwargs)
        self.external_security_group_id = set_else_none(self.external_sg_arg, kwargs)
        self.internal_subnet_ids = split_ids(
            set_else_none(self.internal_subnets_arg, kwargs)
        )
        self.external_subnet_ids = split_ids(
            set_else_none(self.external_subnets_arg, kwargs)
        )
        self.connection_draining_timeout = int(
            set_else_none(
                self.draining_timeout_arg,
                kwargs,
                alt_value=self.default_draining_timeout,
            )
        )
        self.delimiter = set_else_none(
            self.delimiter_arg, kwargs, alt_value=self.default_delimiter
        )
        self.record_ttl = int(
            set_else_none(self.record_ttl_arg, kwargs, alt_value=self.default_record_ttl)
        )
        self.logs_stream = set_else_none(self.logs_arg, kwargs)
        self.session = boto3.session.Session()
        self.override_session(session, kwargs)
        self.aws_region = self.session.region_name

    def __repr__(self):
        return f"SchedulerSettings(cluster={self.cluster}, region={self.aws_region})"

    def override_session(self, session, kwargs):
        """
        Sets the boto3 session from the given session, the profile name, and assumes the IAM role if set.

        :param boto3.session.Session session:
        :param dict kwargs:
        """
        if session is not None:
            self.session = session
        elif keyisset(self.profile_arg, kwargs) or keyisset(self.region_arg, kwargs):
            self.session = boto3.session.Session(
                profile_name=set_else_none(self.profile_arg, kwargs),
                region_name=set_else_none(self.region_arg, kwargs),
            )
        if keyisset(self.arn_arg, kwargs):
            validate_iam_role_arn(kwargs[self.arn_arg])
            try:
                self.session = get_assume_role_session(
                    self.session,
                    kwargs[self.arn_arg],
                    session_name="ECSScheduler@Settings",
                    region=set_else_none(self.region_arg, kwargs),
                )
            except ClientError:
                LOG.error(f"Failed to use the Role ARN {kwargs[self.arn_arg]}")
                raise

    @classmethod
    def from_environment(cls, session=None, **kwargs):
        """
        Reads the settings from the ECS_SCHEDULER_* environment variables. kwargs take precedence.
        """
        settings = {
            key: environ.get(env_var)
            for key, env_var in cls.env_vars.items()
            if environ.get(env_var)
        }
        settings.update({key: value for key, value in kwargs.items() if value})
        return cls(session=session, **settings)

    @classmethod
    def from_file(cls, file_path: str, session=None, **kwargs):
        """
        Reads the settings from a YAML file. kwargs take precedence.

        :param str file_path:
        """
        with open(file_path) as config_fd:
            content = yaml.safe_load(config_fd.read())
        if content is None:
            content = {}
        if not isinstance(content, dict):
            raise TypeError(
                f"{file_path} - settings must be a mapping. Got", type(content)
            )
        LOG.debug(f"Settings loaded from {file_path}")
        content.update({key: value for key, value in kwargs.items() if value})
        return cls(session=session, **content)

    def validate(self) -> None:
        """
        Minimum settings for the ECS only scheduler.

        :raises SchedulerConfigError:
        """
        if not self.cluster:
            raise SchedulerConfigError(self.cluster_arg)
        if not self.delimiter or not DELIMITER_RE.match(self.delimiter):
            raise SchedulerConfigError(
                self.delimiter_arg,
                f"must only contain letters, digits, _ and at least one -. Got {self.delimiter}",
            )

    def validate_load_balanced(self) -> None:
        """
        Settings required to create load balancers and DNS records along with the services.

        :raises SchedulerConfigError: naming the first missing setting
        """
        values = {
            self.cluster_arg: self.cluster,
            self.service_role_arg: self.service_role,
            self.zone_id_arg: self.zone_id,
            self.internal_sg_arg: self.internal_security_group_id,
            self.external_sg_arg: self.external_security_group_id,
            self.internal_subnets_arg: self.internal_subnet_ids,
            self.external_subnets_arg: self.external_subnet_ids,
        }
        for setting_name in self.load_balanced_required:
            if not values[setting_name]:
                raise SchedulerConfigError(setting_name)
        self.validate()
        validate_zone_id(self.zone_id)
