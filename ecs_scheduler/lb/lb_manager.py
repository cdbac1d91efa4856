#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Load balancer model and the interface of the load balancer managers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_scheduler.common.context import RequestContext


class LoadBalancer:
    """
    A provisioned load balancer. Its name is random, the tags carry its ownership.
    """

    def __init__(
        self,
        name: str,
        dns_name: str,
        external: bool = False,
        ssl_cert: str = None,
        instance_port: int = 0,
        tags: dict = None,
    ):
        self.name = name
        self.dns_name = dns_name
        self.external = external
        self.ssl_cert = ssl_cert
        self.instance_port = instance_port
        self.tags = tags if tags is not None else {}

    def __repr__(self):
        return f"LoadBalancer({self.name}, {self.dns_name})"


class CreateLoadBalancerOpts:
    """
    Options to create a new load balancer
    """

    def __init__(
        self,
        instance_port: int,
        external: bool = False,
        ssl_cert: str = None,
        tags: dict = None,
    ):
        self.instance_port = instance_port
        self.external = external
        self.ssl_cert = ssl_cert
        self.tags = tags if tags is not None else {}


class LoadBalancerManager(ABC):
    """
    Interface to create, destroy and list load balancers.
    """

    @abstractmethod
    def create_load_balancer(self, opts: CreateLoadBalancerOpts) -> LoadBalancer:
        pass

    @abstractmethod
    def destroy_load_balancer(self, load_balancer: LoadBalancer) -> None:
        pass

    @abstractmethod
    def load_balancers(
        self, tags: dict = None, ctx: RequestContext = None
    ) -> list:
        pass

    @abstractmethod
    def ensure_load_balancer(self, load_balancer: LoadBalancer) -> None:
        """
        Re-applies the configuration done after creation onto an existing load balancer.
        """


class LoadBalancerManagerWrapper(LoadBalancerManager):
    """
    Base class for the decorators, which own the manager they wrap.
    """

    def __init__(self, manager: LoadBalancerManager):
        self.manager = manager

    def create_load_balancer(self, opts: CreateLoadBalancerOpts) -> LoadBalancer:
        return self.manager.create_load_balancer(opts)

    def destroy_load_balancer(self, load_balancer: LoadBalancer) -> None:
        self.manager.destroy_load_balancer(load_balancer)

    def load_balancers(
        self, tags: dict = None, ctx: RequestContext = None
    ) -> list:
        return self.manager.load_balancers(tags, ctx=ctx)

    def ensure_load_balancer(self, load_balancer: LoadBalancer) -> None:
        self.manager.ensure_load_balancer(load_balancer)
