#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Load balancer manager creating AWS (classic) Elastic Load Balancers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_scheduler.common.context import RequestContext

from uuid import uuid4

from botocore.exceptions import ClientError
from compose_x_common.compose_x_common import keyisset

from ecs_scheduler.common import LOG, attach_partial_results
from ecs_scheduler.common.context import check_context
from ecs_scheduler.exceptions import LoadBalancerProvisioningError
from ecs_scheduler.lb.lb_manager import (
    CreateLoadBalancerOpts,
    LoadBalancer,
    LoadBalancerManager,
)
from ecs_scheduler.lb.lb_params import (
    DEFAULT_CONNECTION_DRAINING_TIMEOUT,
    DESCRIBE_PAGE_SIZE,
    HTTP_PORT,
    HTTPS_PORT,
    SCHEME_EXTERNAL,
    SCHEME_INTERNAL,
)


def new_name() -> str:
    """
    Returns a random name, 32 characters long, which is the limit for ELB names.
    """
    return uuid4().hex


def elb_listeners(port: int, cert_id: str = None) -> list:
    """
    HTTP listener on port 80, plus HTTPS on 443 if the certificate ARN is set. Both forward to port.

    :param int port: the instance port
    :param str cert_id: ARN of the server certificate
    :rtype: list[dict]
    """
    listeners = [
        {
            "Protocol": "HTTP",
            "LoadBalancerPort": HTTP_PORT,
            "InstanceProtocol": "HTTP",
            "InstancePort": port,
        }
    ]
    if cert_id:
        listeners.append(
            {
                "Protocol": "HTTPS",
                "LoadBalancerPort": HTTPS_PORT,
                "InstanceProtocol": "HTTP",
                "InstancePort": port,
                "SSLCertificateId": cert_id,
            }
        )
    return listeners


def elb_tags(tags: dict) -> list:
    return [{"Key": key, "Value": value} for key, value in tags.items()]


def map_tags(tags: list) -> dict:
    return {tag["Key"]: tag.get("Value", "") for tag in tags}


def contains_tags(expected: dict, tags: list) -> bool:
    """
    Whether the ELB tags list contains all of the expected tags

    :param dict expected:
    :param list[dict] tags:
    """
    mapped = map_tags(tags)
    return all(
        key in mapped and mapped[key] == value for key, value in expected.items()
    )


def description_to_load_balancer(description: dict, tags: list) -> LoadBalancer:
    """
    Builds the LoadBalancer from the ELB description. Without listeners, the instance port is 0.
    """
    instance_port = 0
    ssl_cert = None
    listeners = description.get("ListenerDescriptions", [])
    if listeners:
        instance_port = listeners[0]["Listener"]["InstancePort"]
        for listener in listeners:
            if keyisset("SSLCertificateId", listener["Listener"]):
                ssl_cert = listener["Listener"]["SSLCertificateId"]
    return LoadBalancer(
        description["LoadBalancerName"],
        description["DNSName"],
        external=description.get("Scheme") == SCHEME_EXTERNAL,
        ssl_cert=ssl_cert,
        instance_port=instance_port,
        tags=map_tags(tags),
    )


class ElbManager(LoadBalancerManager):
    """
    Creates Elastic Load Balancers, internal or internet-facing.

    :ivar str internal_security_group_id:
    :ivar str external_security_group_id:
    :ivar list[str] internal_subnet_ids:
    :ivar list[str] external_subnet_ids:
    :ivar int connection_draining_timeout:
    """

    def __init__(
        self,
        client,
        internal_security_group_id: str = None,
        external_security_group_id: str = None,
        internal_subnet_ids: list = None,
        external_subnet_ids: list = None,
        connection_draining_timeout: int = DEFAULT_CONNECTION_DRAINING_TIMEOUT,
        name_generator=new_name,
    ):
        self.client = client
        self.internal_security_group_id = internal_security_group_id
        self.external_security_group_id = external_security_group_id
        self.internal_subnet_ids = internal_subnet_ids or []
        self.external_subnet_ids = external_subnet_ids or []
        self.connection_draining_timeout = connection_draining_timeout
        self.new_name = name_generator

    def create_load_balancer(self, opts: CreateLoadBalancerOpts) -> LoadBalancer:
        """
        Creates the ELB then enables connection draining and cross-zone load balancing.
        The tags are set with the creation.

        :raises LoadBalancerProvisioningError: if the ELB was created but the attributes could not be set
        """
        scheme = SCHEME_INTERNAL
        security_group = self.internal_security_group_id
        subnets = self.internal_subnet_ids
        if opts.external:
            scheme = SCHEME_EXTERNAL
            security_group = self.external_security_group_id
            subnets = self.external_subnet_ids

        name = self.new_name()
        elb_r = self.client.create_load_balancer(
            LoadBalancerName=name,
            Listeners=elb_listeners(opts.instance_port, opts.ssl_cert),
            Scheme=scheme,
            SecurityGroups=[security_group],
            Subnets=subnets,
            Tags=elb_tags(opts.tags),
        )
        load_balancer = LoadBalancer(
            name,
            elb_r["DNSName"],
            external=opts.external,
            ssl_cert=opts.ssl_cert,
            instance_port=opts.instance_port,
            tags=dict(opts.tags),
        )
        try:
            self.ensure_load_balancer(load_balancer)
        except ClientError as error:
            LOG.error(f"{name} - Created but failed to set its attributes")
            raise LoadBalancerProvisioningError(
                f"Load balancer {name} was created but its attributes could not be set",
                load_balancer,
            ) from error
        return load_balancer

    def ensure_load_balancer(self, load_balancer: LoadBalancer) -> None:
        self.client.modify_load_balancer_attributes(
            LoadBalancerName=load_balancer.name,
            LoadBalancerAttributes={
                "ConnectionDraining": {
                    "Enabled": True,
                    "Timeout": self.connection_draining_timeout,
                },
                "CrossZoneLoadBalancing": {"Enabled": True},
            },
        )

    def destroy_load_balancer(self, load_balancer: LoadBalancer) -> None:
        self.client.delete_load_balancer(LoadBalancerName=load_balancer.name)

    def load_balancers(self, tags: dict = None, ctx: RequestContext = None) -> list:
        """
        Lists all the ELBs and keeps those with all of the given tags. No tags returns all ELBs.

        :param dict tags:
        :param RequestContext ctx:
        :rtype: list[LoadBalancer]
        """
        if tags is None:
            tags = {}
        load_balancers = []
        next_marker = None
        try:
            while True:
                check_context(ctx)
                describe_args = {"PageSize": DESCRIBE_PAGE_SIZE}
                if next_marker:
                    describe_args["Marker"] = next_marker
                elbs_r = self.client.describe_load_balancers(**describe_args)
                descriptions = {
                    description["LoadBalancerName"]: description
                    for description in elbs_r["LoadBalancerDescriptions"]
                }
                if not descriptions:
                    break
                tags_r = self.client.describe_tags(
                    LoadBalancerNames=list(descriptions)
                )
                for tags_description in tags_r["TagDescriptions"]:
                    elb_tags_list = tags_description.get("Tags", [])
                    if contains_tags(tags, elb_tags_list):
                        load_balancers.append(
                            description_to_load_balancer(
                                descriptions[tags_description["LoadBalancerName"]],
                                elb_tags_list,
                            )
                        )
                if not keyisset("NextMarker", elbs_r):
                    break
                next_marker = elbs_r["NextMarker"]
        except Exception as error:
            attach_partial_results(error, load_balancers)
            raise
        return load_balancers
