#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Wrapper around the boto3 ECS client which namespaces the services and task definitions of each App
within the cluster, named ``<app_id><delimiter><process_type>``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_scheduler.common.context import RequestContext

from compose_x_common.compose_x_common import keyisset

from ecs_scheduler.common import LOG, chunks, resource_id_from_arn
from ecs_scheduler.common.context import check_context
from ecs_scheduler.ecs.ecs_params import DESCRIBE_SERVICES_MAX, DESCRIBE_TASKS_MAX
from ecs_scheduler.scheduler import DEFAULT_DELIMITER, NAME_RE, validate_name


class EcsAppClient:
    """
    ECS API calls scoped to one cluster, with the App ID used as prefix for resource names.

    :ivar client: boto3 ECS client
    :ivar str cluster:
    :ivar str delimiter:
    """

    def __init__(self, client, cluster: str, delimiter: str = DEFAULT_DELIMITER):
        self.client = client
        self.cluster = cluster
        self.delimiter = delimiter

    def app_prefix(self, app_id: str) -> str:
        validate_name(app_id, "app ID")
        return f"{app_id}{self.delimiter}"

    def app_name(self, app_id: str, process_type: str) -> str:
        """Service name and task definition family of the process"""
        validate_name(process_type, "process type")
        return f"{self.app_prefix(app_id)}{process_type}"

    def process_type_of(self, app_id: str, service_name: str):
        """
        Returns the process type of the app the service is named after, None if it belongs to another app.
        i.e. with app acme, acme-web returns web but acme-web-api, owned by acme-web, returns None.
        """
        prefix = self.app_prefix(app_id)
        if not service_name.startswith(prefix):
            return None
        process_type = service_name[len(prefix) :]
        if self.delimiter in process_type or not NAME_RE.match(process_type):
            return None
        return process_type

    def runs_app_process(
        self, app_id: str, service_name: str, task_definition: dict
    ) -> bool:
        """
        True when the service is named after a process of the app and its task definition runs that process.
        """
        process_type = self.process_type_of(app_id, service_name)
        if not process_type:
            return False
        containers = task_definition.get("containerDefinitions") or []
        return not containers or containers[0].get("name") == process_type

    def register_app_task_definition(self, app_id: str, process_type: str, **kwargs):
        return self.client.register_task_definition(
            family=self.app_name(app_id, process_type), **kwargs
        )["taskDefinition"]

    def create_app_service(self, app_id: str, process_type: str, **kwargs):
        return self.client.create_service(
            cluster=self.cluster,
            serviceName=self.app_name(app_id, process_type),
            taskDefinition=self.app_name(app_id, process_type),
            **kwargs,
        )["service"]

    def update_app_service(
        self,
        app_id: str,
        process_type: str,
        desired_count: int,
        with_task_definition: bool = False,
    ):
        """
        Updates the desired count of the service, and moves it to the latest revision of the family.
        """
        update_args = {
            "cluster": self.cluster,
            "service": self.app_name(app_id, process_type),
            "desiredCount": desired_count,
        }
        if with_task_definition:
            update_args["taskDefinition"] = self.app_name(app_id, process_type)
        return self.client.update_service(**update_args)["service"]

    def delete_app_service(self, app_id: str, process_type: str):
        return self.client.delete_service(
            cluster=self.cluster, service=self.app_name(app_id, process_type)
        )["service"]

    def list_app_services(self, app_id: str, ctx: RequestContext = None) -> list:
        """
        Lists all services of the cluster and keeps the ones named <app_id><delimiter><process type>.

        :return: the services ARNs
        :rtype: list[str]
        """
        services_arns = []
        next_token = None
        while True:
            check_context(ctx)
            list_args = {"cluster": self.cluster}
            if next_token:
                list_args["nextToken"] = next_token
            services_r = self.client.list_services(**list_args)
            services_arns += [
                arn
                for arn in services_r["serviceArns"]
                if self.process_type_of(app_id, resource_id_from_arn(arn))
            ]
            if not keyisset("nextToken", services_r):
                break
            next_token = services_r["nextToken"]
        LOG.debug(f"{app_id} - {len(services_arns)} services in {self.cluster}")
        return services_arns

    def describe_services(self, services: list, ctx: RequestContext = None) -> list:
        descriptions = []
        for batch in chunks(services, DESCRIBE_SERVICES_MAX):
            check_context(ctx)
            descriptions += self.client.describe_services(
                cluster=self.cluster, services=batch
            )["services"]
        return descriptions

    def list_app_tasks(self, app_id: str, ctx: RequestContext = None) -> list:
        """
        Lists the tasks of all the services of the app

        :return: the tasks ARNs
        :rtype: list[str]
        """
        tasks_arns = []
        for service_arn in self.list_app_services(app_id, ctx=ctx):
            next_token = None
            while True:
                check_context(ctx)
                list_args = {
                    "cluster": self.cluster,
                    "serviceName": resource_id_from_arn(service_arn),
                }
                if next_token:
                    list_args["nextToken"] = next_token
                tasks_r = self.client.list_tasks(**list_args)
                tasks_arns += tasks_r["taskArns"]
                if not keyisset("nextToken", tasks_r):
                    break
                next_token = tasks_r["nextToken"]
        return tasks_arns

    def describe_tasks(self, tasks: list, ctx: RequestContext = None) -> list:
        descriptions = []
        for batch in chunks(tasks, DESCRIBE_TASKS_MAX):
            check_context(ctx)
            descriptions += self.client.describe_tasks(
                cluster=self.cluster, tasks=batch
            )["tasks"]
        return descriptions

    def describe_task_definition(self, task_definition: str) -> dict:
        return self.client.describe_task_definition(taskDefinition=task_definition)[
            "taskDefinition"
        ]

    def stop_task(self, task_id: str, reason: str = None):
        stop_args = {"cluster": self.cluster, "task": task_id}
        if reason:
            stop_args["reason"] = reason
        return self.client.stop_task(**stop_args)["task"]
