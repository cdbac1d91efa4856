#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Process manager decorator giving a load balancer to each process publishing a port.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_scheduler.lb.lb_manager import LoadBalancer, LoadBalancerManager
    from ecs_scheduler.scheduler import App, Process

from ecs_scheduler.common import LOG
from ecs_scheduler.ecs.ecs_process_manager import ProcessManager, ProcessManagerWrapper
from ecs_scheduler.lb.lb_manager import CreateLoadBalancerOpts
from ecs_scheduler.lb.lb_params import APP_ID_TAG, PROCESS_TYPE_TAG


def lb_tags(app_id: str, process_type: str) -> dict:
    """
    Ownership tags of the process load balancer. Load balancer names are random, these are the only link.
    """
    return {APP_ID_TAG: app_id, PROCESS_TYPE_TAG: process_type}


class LBProcessManager(ProcessManagerWrapper):
    """
    Creates the load balancer of the processes with ports before creating their service,
    and destroys it after their service was removed.

    :ivar LoadBalancerManager lb:
    """

    def __init__(self, process_manager: ProcessManager, lb: LoadBalancerManager):
        super().__init__(process_manager)
        self.lb = lb

    def find_load_balancer(self, app_id: str, process_type: str):
        """
        :return: the load balancer of the process, None if there is none
        :rtype: LoadBalancer
        """
        load_balancers = self.lb.load_balancers(lb_tags(app_id, process_type))
        if len(load_balancers) > 1:
            LOG.warning(
                f"{app_id}.{process_type} - Found {len(load_balancers)} load balancers. "
                f"Using {load_balancers[0].name}"
            )
        return load_balancers[0] if load_balancers else None

    def create_load_balancer(self, app: App, process: Process) -> LoadBalancer:
        return self.lb.create_load_balancer(
            CreateLoadBalancerOpts(
                process.ports[0].host,
                external=process.external,
                ssl_cert=process.ssl_cert,
                tags=lb_tags(app.id, process.type),
            )
        )

    def create_process(self, app: App, process: Process) -> None:
        """
        Finds or creates the process load balancer, then creates the service attached to it.
        An existing load balancer with a different exposure is replaced, along with the service.
        """
        if not process.ports:
            self.process_manager.create_process(app, process)
            return

        load_balancer = self.find_load_balancer(app.id, process.type)
        if load_balancer is not None and load_balancer.external != process.external:
            LOG.warning(
                f"{app.id}.{process.type} - Exposure changed to {process.exposure}. "
                f"Replacing the service and load balancer {load_balancer.name}"
            )
            self.remove_process(app.id, process.type)
            load_balancer = None

        if load_balancer is None:
            load_balancer = self.create_load_balancer(app, process)
        else:
            self.lb.ensure_load_balancer(load_balancer)

        process.load_balancer = load_balancer.name
        self.process_manager.create_process(app, process)

    def remove_process(self, app_id: str, process_type: str) -> None:
        """
        Removes the service then destroys the load balancers owned by the process, if any.
        """
        self.process_manager.remove_process(app_id, process_type)
        for load_balancer in self.lb.load_balancers(lb_tags(app_id, process_type)):
            self.lb.destroy_load_balancer(load_balancer)
