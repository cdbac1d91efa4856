#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Decorators for the load balancer managers.

* :class:`WithCNAME` manages the CNAME record of the app along with its load balancer
* :class:`WithLogging` logs every operation
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_scheduler.common.context import RequestContext
    from ecs_scheduler.lb.route53 import Nameserver

from time import monotonic

from ecs_scheduler.common import LOG
from ecs_scheduler.exceptions import DnsRegistrationError
from ecs_scheduler.lb.lb_manager import (
    CreateLoadBalancerOpts,
    LoadBalancer,
    LoadBalancerManager,
    LoadBalancerManagerWrapper,
)
from ecs_scheduler.lb.lb_params import APP_ID_TAG


def log_fields(**fields) -> str:
    return " ".join(f"{key}={value}" for key, value in fields.items())


class WithCNAME(LoadBalancerManagerWrapper):
    """
    Creates a CNAME record, named after the AppID tag, pointing to the load balancer DNS name,
    and deletes it when the load balancer is destroyed.

    The two steps are not transactional: when the DNS change fails, the load balancer is kept and
    :class:`DnsRegistrationError` is raised with it. Calling the operation again converges.
    """

    def __init__(self, manager: LoadBalancerManager, nameserver: Nameserver):
        super().__init__(manager)
        self.nameserver = nameserver

    def set_record(self, load_balancer: LoadBalancer, tags: dict) -> None:
        if APP_ID_TAG not in tags:
            return
        try:
            self.nameserver.create_or_update_record(
                tags[APP_ID_TAG], load_balancer.dns_name
            )
        except Exception as error:
            raise DnsRegistrationError(
                f"Failed to set the CNAME of {tags[APP_ID_TAG]} to {load_balancer.dns_name}",
                load_balancer,
            ) from error

    def create_load_balancer(self, opts: CreateLoadBalancerOpts) -> LoadBalancer:
        load_balancer = self.manager.create_load_balancer(opts)
        self.set_record(load_balancer, opts.tags)
        return load_balancer

    def ensure_load_balancer(self, load_balancer: LoadBalancer) -> None:
        self.manager.ensure_load_balancer(load_balancer)
        self.set_record(load_balancer, load_balancer.tags)

    def destroy_load_balancer(self, load_balancer: LoadBalancer) -> None:
        self.manager.destroy_load_balancer(load_balancer)
        if APP_ID_TAG not in load_balancer.tags:
            return
        try:
            self.nameserver.delete_record(
                load_balancer.tags[APP_ID_TAG], target=load_balancer.dns_name
            )
        except Exception as error:
            raise DnsRegistrationError(
                f"Load balancer {load_balancer.name} destroyed but failed to delete "
                f"the CNAME of {load_balancer.tags[APP_ID_TAG]}",
                load_balancer,
            ) from error


class WithLogging(LoadBalancerManagerWrapper):
    """
    Logs the calls to the wrapped manager, their duration and outcome.
    """

    def _call(self, operation: str, method, *args, fields: dict = None, **kwargs):
        fields = fields if fields is not None else {}
        LOG.debug(f"at={operation} {log_fields(**fields)}")
        start = monotonic()
        try:
            result = method(*args, **kwargs)
        except Exception as error:
            LOG.error(
                f"at={operation} {log_fields(**fields)} "
                f"duration={monotonic() - start:.3f}s error={error!r}"
            )
            raise
        LOG.info(
            f"at={operation} {log_fields(**fields)} duration={monotonic() - start:.3f}s"
        )
        return result

    def create_load_balancer(self, opts: CreateLoadBalancerOpts) -> LoadBalancer:
        load_balancer = self._call(
            "create_load_balancer",
            self.manager.create_load_balancer,
            opts,
            fields={
                "external": opts.external,
                "instance_port": opts.instance_port,
                "ssl_cert": opts.ssl_cert,
                "tags": opts.tags,
            },
        )
        LOG.info(
            f"at=create_load_balancer {log_fields(name=load_balancer.name, dns_name=load_balancer.dns_name)}"
        )
        return load_balancer

    def destroy_load_balancer(self, load_balancer: LoadBalancer) -> None:
        self._call(
            "destroy_load_balancer",
            self.manager.destroy_load_balancer,
            load_balancer,
            fields={"name": load_balancer.name},
        )

    def load_balancers(self, tags: dict = None, ctx: RequestContext = None) -> list:
        load_balancers = self._call(
            "load_balancers",
            self.manager.load_balancers,
            tags,
            ctx=ctx,
            fields={"tags": tags},
        )
        LOG.debug(f"at=load_balancers {log_fields(count=len(load_balancers))}")
        return load_balancers

    def ensure_load_balancer(self, load_balancer: LoadBalancer) -> None:
        self._call(
            "ensure_load_balancer",
            self.manager.ensure_load_balancer,
            load_balancer,
            fields={"name": load_balancer.name},
        )
