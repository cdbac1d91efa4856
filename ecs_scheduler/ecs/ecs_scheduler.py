#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Scheduler backed by AWS ECS, which converges the services of an App to its declared processes.

The scheduler keeps no state: every call reads the current state from the AWS APIs.
When a call fails half-way, what was already changed stays changed. Calling it again converges.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_scheduler.common.context import RequestContext
    from ecs_scheduler.common.settings import SchedulerSettings
    from ecs_scheduler.ecs.ecs_process_manager import ProcessManager
    from ecs_scheduler.scheduler import App, Process

from ecs_scheduler.common import LOG, attach_partial_results, resource_id_from_arn
from ecs_scheduler.ecs.ecs_client import EcsAppClient
from ecs_scheduler.ecs.ecs_lb_process_manager import LBProcessManager
from ecs_scheduler.ecs.ecs_params import SERVICE_TASK_GROUP_PREFIX
from ecs_scheduler.ecs.ecs_process_manager import EcsProcessManager
from ecs_scheduler.ecs.task_definition import task_definition_to_process
from ecs_scheduler.lb.elb import ElbManager
from ecs_scheduler.lb.lb_decorators import WithCNAME, WithLogging
from ecs_scheduler.lb.route53 import Route53Nameserver
from ecs_scheduler.scheduler import Instance, diff_process_types, process_types


def set_failed_process_type(error: Exception, process_type: str) -> None:
    error.process_type = process_type


class Scheduler:
    """
    Facade to submit, remove and inspect Apps.

    :ivar ProcessManager process_manager:
    :ivar EcsAppClient ecs:
    """

    def __init__(self, process_manager: ProcessManager, ecs: EcsAppClient):
        self.process_manager = process_manager
        self.ecs = ecs

    @property
    def cluster(self) -> str:
        return self.ecs.cluster

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

    def submit(self, app: App, ctx: RequestContext = None) -> None:
        """
        Creates or updates the service of each process of the App, in order, then removes the services
        of the process types the App no longer has. For example, submitting an app with `web` only when
        it previously had `web` and `worker` removes the `worker` service.

        Stops at the first failure, and the process type it failed for is set as
        ``process_type`` on the exception. Nothing already done is rolled back.

        :param App app:
        :param RequestContext ctx:
        """
        existing = self.processes(app.id, ctx=ctx)

        for process in app.processes:
            try:
                self.create_process(app, process)
            except Exception as error:
                LOG.error(f"{app.id}.{process.type} - Failed to create or update")
                set_failed_process_type(error, process.type)
                raise

        to_remove = diff_process_types(existing, app.processes)
        for process_type in to_remove:
            self._remove_process(app.id, process_type)
        LOG.info(
            f"{app.id} - Submitted {len(app.processes)} processes, removed {len(to_remove)}"
        )

    def _remove_process(self, app_id: str, process_type: str) -> None:
        try:
            self.remove_process(app_id, process_type)
        except Exception as error:
            LOG.error(f"{app_id}.{process_type} - Failed to remove")
            set_failed_process_type(error, process_type)
            raise

    def remove(self, app_id: str, ctx: RequestContext = None) -> None:
        """
        Removes all the services of the App.
        """
        for process_type in process_types(self.processes(app_id, ctx=ctx)):
            self._remove_process(app_id, process_type)
        LOG.info(f"{app_id} - Removed")

    def instances(self, app_id: str, ctx: RequestContext = None) -> list:
        """
        Returns the running, pending and draining tasks of the App services.

        When an API call fails, the instances found so far are set as ``partial_results``
        on the exception raised.

        :rtype: list[Instance]
        """
        instances = []
        task_definitions = {}
        try:
            tasks_arns = self.ecs.list_app_tasks(app_id, ctx=ctx)
            if not tasks_arns:
                return instances
            for task in self.ecs.describe_tasks(tasks_arns, ctx=ctx):
                task_definition_arn = task["taskDefinitionArn"]
                if task_definition_arn not in task_definitions:
                    task_definitions[task_definition_arn] = (
                        self.ecs.describe_task_definition(task_definition_arn)
                    )
                group = task.get("group", "")
                service_name = (
                    group[len(SERVICE_TASK_GROUP_PREFIX) :]
                    if group.startswith(SERVICE_TASK_GROUP_PREFIX)
                    else ""
                )
                if not self.ecs.runs_app_process(
                    app_id, service_name, task_definitions[task_definition_arn]
                ):
                    continue
                instances.append(
                    Instance(
                        resource_id_from_arn(task["taskArn"]),
                        task_definition_to_process(
                            task_definitions[task_definition_arn]
                        ),
                        task.get("lastStatus", ""),
                        datetime.now(timezone.utc),
                    )
                )
        except Exception as error:
            attach_partial_results(error, instances)
            raise
        return instances

    def stop(self, instance_id: str) -> None:
        """
        Stops the task. The service starts a new one if it still wants more running tasks.
        """
        self.ecs.stop_task(instance_id, reason="Stopped by ecs-scheduler")
        LOG.info(f"{instance_id} - Stopped in {self.cluster}")


def new_scheduler(settings: SchedulerSettings) -> Scheduler:
    """
    Scheduler which creates the ECS services only.

    :raises SchedulerConfigError: if the cluster is not set
    """
    settings.validate()
    ecs = EcsAppClient(
        settings.session.client("ecs"), settings.cluster, settings.delimiter
    )
    process_manager = EcsProcessManager(ecs, service_role=settings.service_role)
    return Scheduler(process_manager, ecs)


def new_load_balanced_scheduler(settings: SchedulerSettings) -> Scheduler:
    """
    Scheduler which

    * creates the ECS services
    * creates an internal or external ELB for the processes with ports
    * creates a CNAME record in Route53 pointing to the ELB

    :raises SchedulerConfigError: naming the first missing setting, before any API call is made
    """
    settings.validate_load_balanced()
    ecs = EcsAppClient(
        settings.session.client("ecs"), settings.cluster, settings.delimiter
    )
    process_manager = EcsProcessManager(ecs, service_role=settings.service_role)

    elb = ElbManager(
        settings.session.client("elb"),
        internal_security_group_id=settings.internal_security_group_id,
        external_security_group_id=settings.external_security_group_id,
        internal_subnet_ids=settings.internal_subnet_ids,
        external_subnet_ids=settings.external_subnet_ids,
        connection_draining_timeout=settings.connection_draining_timeout,
    )
    nameserver = Route53Nameserver(
        settings.session.client("route53"), settings.zone_id, ttl=settings.record_ttl
    )
    lb_manager = WithLogging(WithCNAME(elb, nameserver))

    return Scheduler(LBProcessManager(process_manager, lb_manager), ecs)
