#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Process managers give direct control over the individual processes of an App.

:class:`EcsProcessManager` creates one ECS service and task definition family per process type.
Decorators implement the same :class:`ProcessManager` interface and wrap another manager.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_scheduler.common.context import RequestContext
    from ecs_scheduler.ecs.ecs_client import EcsAppClient
    from ecs_scheduler.scheduler import App, Process

from botocore.exceptions import ClientError
from compose_x_common.compose_x_common import keyisset, set_else_none

from ecs_scheduler.common import LOG, attach_partial_results
from ecs_scheduler.ecs.ecs_params import SERVICE_STATUS_ACTIVE
from ecs_scheduler.ecs.helpers import is_service_not_found
from ecs_scheduler.ecs.task_definition import (
    task_definition_input,
    task_definition_to_process,
)
from ecs_scheduler.exceptions import ProcessRunNotImplemented


class ProcessManager(ABC):
    """
    Interface to create, list, scale and remove the processes of an App.
    """

    @abstractmethod
    def create_process(self, app: App, process: Process) -> None:
        pass

    @abstractmethod
    def remove_process(self, app_id: str, process_type: str) -> None:
        pass

    @abstractmethod
    def processes(self, app_id: str, ctx: RequestContext = None) -> list:
        pass

    @abstractmethod
    def scale(self, app_id: str, process_type: str, instances: int) -> None:
        pass

    @abstractmethod
    def run(self, app: App, process: Process, stdin=None, stdout=None) -> None:
        pass


class ProcessManagerWrapper(ProcessManager):
    """
    Base class for decorators: every call goes through to the wrapped manager unless overridden.
    """

    def __init__(self, process_manager: ProcessManager):
        self.process_manager = process_manager

    def create_process(self, app: App, process: Process) -> None:
        self.process_manager.create_process(app, process)

    def remove_process(self, app_id: str, process_type: str) -> None:
        self.process_manager.remove_process(app_id, process_type)

    def processes(self, app_id: str, ctx: RequestContext = None) -> list:
        return self.process_manager.processes(app_id, ctx=ctx)

    def scale(self, app_id: str, process_type: str, instances: int) -> None:
        self.process_manager.scale(app_id, process_type, instances)

    def run(self, app: App, process: Process, stdin=None, stdout=None) -> None:
        self.process_manager.run(app, process, stdin=stdin, stdout=stdout)


class EcsProcessManager(ProcessManager):
    """
    Creates ECS services for Processes.

    :ivar EcsAppClient ecs:
    :ivar str service_role: IAM role given to the services with a load balancer
    """

    def __init__(self, ecs: EcsAppClient, service_role: str = None):
        self.ecs = ecs
        self.service_role = service_role

    @property
    def cluster(self) -> str:
        return self.ecs.cluster

    def create_process(self, app: App, process: Process) -> None:
        """
        Registers a new task definition revision for the process then creates or updates its service.
        """
        self.create_task_definition(app, process)
        self.update_create_service(app, process)

    def create_task_definition(self, app: App, process: Process) -> dict:
        task_definition = self.ecs.register_app_task_definition(
            app.id, process.type, **task_definition_input(process)
        )
        LOG.debug(
            f"{app.id}.{process.type} - Registered {task_definition['taskDefinitionArn']}"
        )
        return task_definition

    def create_service(self, app: App, process: Process) -> dict:
        service_args = {"desiredCount": process.instances}
        if process.load_balancer:
            service_args["loadBalancers"] = [
                {
                    "containerName": process.type,
                    "containerPort": process.ports[0].container,
                    "loadBalancerName": process.load_balancer,
                }
            ]
            service_args["role"] = self.service_role
        service = self.ecs.create_app_service(app.id, process.type, **service_args)
        LOG.info(f"{app.id}.{process.type} - Created service in {self.cluster}")
        return service

    def update_service(self, app: App, process: Process):
        """
        :return: the service, None if it does not exist
        """
        try:
            return self.ecs.update_app_service(
                app.id, process.type, process.instances, with_task_definition=True
            )
        except ClientError as error:
            if is_service_not_found(error):
                return None
            raise

    def update_create_service(self, app: App, process: Process) -> dict:
        service = self.update_service(app, process)
        if service is not None:
            LOG.info(f"{app.id}.{process.type} - Updated service in {self.cluster}")
            return service
        return self.create_service(app, process)

    def processes(self, app_id: str, ctx: RequestContext = None) -> list:
        """
        Rebuilds the processes of the app from its services' task definitions.

        When an API call fails, the processes found so far are set as ``partial_results``
        on the exception raised.

        :rtype: list[Process]
        """
        processes = []
        try:
            services_arns = self.ecs.list_app_services(app_id, ctx=ctx)
            if not services_arns:
                return processes
            for service in self.ecs.describe_services(services_arns, ctx=ctx):
                if service.get("status", SERVICE_STATUS_ACTIVE) != SERVICE_STATUS_ACTIVE:
                    continue
                task_definition = self.ecs.describe_task_definition(
                    service["taskDefinition"]
                )
                if not self.ecs.runs_app_process(
                    app_id, service["serviceName"], task_definition
                ):
                    LOG.warning(
                        f"{app_id} - Service {service['serviceName']} does not run a process of the app. Skipping"
                    )
                    continue
                process = task_definition_to_process(task_definition)
                process.instances = service.get("desiredCount", 0)
                if keyisset("loadBalancers", service):
                    process.load_balancer = set_else_none(
                        "loadBalancerName", service["loadBalancers"][0]
                    )
                processes.append(process)
        except Exception as error:
            attach_partial_results(error, processes)
            raise
        return processes

    def remove_process(self, app_id: str, process_type: str) -> None:
        """
        Scales the service down to 0 then deletes it. A service that does not exist is already removed.
        """
        try:
            self.scale(app_id, process_type, 0)
            self.ecs.delete_app_service(app_id, process_type)
        except ClientError as error:
            if is_service_not_found(error):
                LOG.debug(f"{app_id}.{process_type} - Service not found. Nothing to remove")
                return
            raise
        LOG.info(f"{app_id}.{process_type} - Removed service from {self.cluster}")

    def scale(self, app_id: str, process_type: str, instances: int) -> None:
        self.ecs.update_app_service(app_id, process_type, instances)

    def run(self, app: App, process: Process, stdin=None, stdout=None) -> None:
        attachment = "attached" if stdout is not None else "detached"
        raise ProcessRunNotImplemented(
            f"running a {attachment} process is not implemented by the ECS manager."
        )
