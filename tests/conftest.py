#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
In-memory fakes of the boto3 clients, keeping just enough state to check the reconciliation of Apps.
"""

from os import path

import pytest
from botocore.exceptions import ClientError

from ecs_scheduler.common.settings import SchedulerSettings

ACCOUNT_ID = "012345678912"
REGION = "eu-west-1"
CLUSTER = "test"
ZONE_ID = "Z0123456789ABC"
ZONE_NAME = "example.com."


def client_error(operation: str, code: str, message: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def paginate(items: list, token, page_size: int):
    start = int(token) if token else 0
    page = items[start : start + page_size]
    next_token = (
        str(start + page_size) if start + page_size < len(items) else None
    )
    return page, next_token


class FakeEcsClient:
    """
    Keeps task definitions, services and their tasks. Services start as many tasks as they desire.
    """

    page_size = 2

    def __init__(self):
        self.task_definitions = {}
        self.services = {}
        self.tasks = {}
        self.calls = []
        self.fail_on = {}
        self._task_count = 0

    def _call(self, operation: str):
        self.calls.append(operation)
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def _service_arn(self, name: str) -> str:
        return f"arn:aws:ecs:{REGION}:{ACCOUNT_ID}:service/{CLUSTER}/{name}"

    def _resolve_task_definition(self, task_definition: str) -> dict:
        name = task_definition.split("/")[-1]
        if ":" in name:
            family, revision = name.split(":")
            return self.task_definitions[family][int(revision) - 1]
        return self.task_definitions[name][-1]

    def _sync_tasks(self, service: dict):
        running = [
            arn
            for arn, task in self.tasks.items()
            if task["group"] == f"service:{service['serviceName']}"
        ]
        while len(running) > service["desiredCount"]:
            del self.tasks[running.pop()]
        while len(running) < service["desiredCount"]:
            self._task_count += 1
            arn = f"arn:aws:ecs:{REGION}:{ACCOUNT_ID}:task/{CLUSTER}/{self._task_count:032x}"
            self.tasks[arn] = {
                "taskArn": arn,
                "taskDefinitionArn": service["taskDefinition"],
                "group": f"service:{service['serviceName']}",
                "lastStatus": "RUNNING",
            }
            running.append(arn)

    def _get_service(self, operation: str, name: str) -> dict:
        if name not in self.services:
            raise client_error(operation, "ServiceNotFoundException", "Service not found.")
        service = self.services[name]
        if service["status"] != "ACTIVE":
            raise client_error(
                operation, "ServiceNotActiveException", "Service was not ACTIVE."
            )
        return service

    def register_task_definition(self, family, containerDefinitions):
        self._call("register_task_definition")
        revisions = self.task_definitions.setdefault(family, [])
        task_definition = {
            "taskDefinitionArn": f"arn:aws:ecs:{REGION}:{ACCOUNT_ID}:task-definition/{family}:{len(revisions) + 1}",
            "family": family,
            "revision": len(revisions) + 1,
            "containerDefinitions": containerDefinitions,
        }
        revisions.append(task_definition)
        return {"taskDefinition": task_definition}

    def describe_task_definition(self, taskDefinition):
        self._call("describe_task_definition")
        return {"taskDefinition": self._resolve_task_definition(taskDefinition)}

    def create_service(
        self,
        cluster,
        serviceName,
        taskDefinition,
        desiredCount,
        loadBalancers=None,
        role=None,
    ):
        self._call("create_service")
        if serviceName in self.services:
            raise client_error(
                "CreateService",
                "InvalidParameterException",
                "Creation of service was not idempotent.",
            )
        service = {
            "serviceArn": self._service_arn(serviceName),
            "serviceName": serviceName,
            "clusterArn": cluster,
            "status": "ACTIVE",
            "desiredCount": desiredCount,
            "taskDefinition": self._resolve_task_definition(taskDefinition)[
                "taskDefinitionArn"
            ],
            "loadBalancers": loadBalancers or [],
            "roleArn": role,
        }
        self.services[serviceName] = service
        self._sync_tasks(service)
        return {"service": service}

    def update_service(self, cluster, service, desiredCount, taskDefinition=None):
        self._call("update_service")
        existing = self._get_service("UpdateService", service)
        existing["desiredCount"] = desiredCount
        if taskDefinition:
            existing["taskDefinition"] = self._resolve_task_definition(taskDefinition)[
                "taskDefinitionArn"
            ]
        self._sync_tasks(existing)
        return {"service": existing}

    def delete_service(self, cluster, service):
        self._call("delete_service")
        existing = self._get_service("DeleteService", service)
        if existing["desiredCount"] > 0:
            raise client_error(
                "DeleteService",
                "InvalidParameterException",
                "The service cannot be stopped while it is scaled above 0.",
            )
        del self.services[service]
        return {"service": existing}

    def list_services(self, cluster, nextToken=None):
        self._call("list_services")
        arns = [service["serviceArn"] for service in self.services.values()]
        page, next_token = paginate(arns, nextToken, self.page_size)
        response = {"serviceArns": page}
        if next_token:
            response["nextToken"] = next_token
        return response

    def describe_services(self, cluster, services):
        self._call("describe_services")
        assert len(services) <= 10
        return {
            "services": [
                self.services[arn.split("/")[-1]]
                for arn in services
                if arn.split("/")[-1] in self.services
            ],
            "failures": [],
        }

    def list_tasks(self, cluster, serviceName, nextToken=None):
        self._call("list_tasks")
        arns = [
            arn
            for arn, task in self.tasks.items()
            if task["group"] == f"service:{serviceName}"
        ]
        page, next_token = paginate(arns, nextToken, self.page_size)
        response = {"taskArns": page}
        if next_token:
            response["nextToken"] = next_token
        return response

    def describe_tasks(self, cluster, tasks):
        self._call("describe_tasks")
        assert len(tasks) <= 100
        return {"tasks": [self.tasks[arn] for arn in tasks if arn in self.tasks]}

    def stop_task(self, cluster, task, reason=None):
        self._call("stop_task")
        arn = next(arn for arn in self.tasks if arn.endswith(f"/{task}"))
        stopped = self.tasks.pop(arn)
        stopped["lastStatus"] = "STOPPED"
        stopped["stoppedReason"] = reason
        return {"task": stopped}


class FakeElbClient:
    def __init__(self):
        self.load_balancers = {}
        self.attributes = {}
        self.fail_on = {}

    def _call(self, operation: str):
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def create_load_balancer(
        self, LoadBalancerName, Listeners, Scheme, SecurityGroups, Subnets, Tags
    ):
        self._call("create_load_balancer")
        dns_name = f"{LoadBalancerName}.{REGION}.elb.amazonaws.com"
        if Scheme == "internal":
            dns_name = f"internal-{dns_name}"
        self.load_balancers[LoadBalancerName] = {
            "LoadBalancerName": LoadBalancerName,
            "DNSName": dns_name,
            "Scheme": Scheme,
            "SecurityGroups": SecurityGroups,
            "Subnets": Subnets,
            "ListenerDescriptions": [
                {"Listener": listener, "PolicyNames": []} for listener in Listeners
            ],
            "Tags": Tags,
        }
        return {"DNSName": dns_name}

    def modify_load_balancer_attributes(self, LoadBalancerName, LoadBalancerAttributes):
        self._call("modify_load_balancer_attributes")
        self.attributes[LoadBalancerName] = LoadBalancerAttributes
        return {
            "LoadBalancerName": LoadBalancerName,
            "LoadBalancerAttributes": LoadBalancerAttributes,
        }

    def delete_load_balancer(self, LoadBalancerName):
        self._call("delete_load_balancer")
        self.load_balancers.pop(LoadBalancerName, None)
        return {}

    def describe_load_balancers(self, PageSize, Marker=None):
        self._call("describe_load_balancers")
        descriptions = [
            {key: value for key, value in description.items() if key != "Tags"}
            for description in self.load_balancers.values()
        ]
        page, next_marker = paginate(descriptions, Marker, PageSize)
        response = {"LoadBalancerDescriptions": page}
        if next_marker:
            response["NextMarker"] = next_marker
        return response

    def describe_tags(self, LoadBalancerNames):
        self._call("describe_tags")
        assert len(LoadBalancerNames) <= 20
        return {
            "TagDescriptions": [
                {
                    "LoadBalancerName": name,
                    "Tags": self.load_balancers[name]["Tags"],
                }
                for name in LoadBalancerNames
            ]
        }


class FakeRoute53Client:
    def __init__(self):
        self.records = {}
        self.changes = []
        self.fail_on = {}

    def _call(self, operation: str):
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def get_hosted_zone(self, Id):
        self._call("get_hosted_zone")
        return {"HostedZone": {"Id": f"/hostedzone/{Id}", "Name": ZONE_NAME}}

    def change_resource_record_sets(self, HostedZoneId, ChangeBatch):
        self._call("change_resource_record_sets")
        for change in ChangeBatch["Changes"]:
            record = change["ResourceRecordSet"]
            self.changes.append((change["Action"], record["Name"]))
            if change["Action"] == "UPSERT":
                self.records[record["Name"]] = record
            elif change["Action"] == "DELETE":
                if self.records.get(record["Name"]) != record:
                    raise client_error(
                        "ChangeResourceRecordSets",
                        "InvalidChangeBatch",
                        "Tried to delete resource record set but it was not found",
                    )
                del self.records[record["Name"]]
        return {"ChangeInfo": {"Id": "/change/C1", "Status": "PENDING"}}

    def list_resource_record_sets(
        self, HostedZoneId, StartRecordName, StartRecordType, MaxItems
    ):
        self._call("list_resource_record_sets")
        names = sorted(name for name in self.records if name >= StartRecordName)
        return {
            "ResourceRecordSets": [self.records[name] for name in names][
                : int(MaxItems)
            ],
            "IsTruncated": False,
            "MaxItems": MaxItems,
        }


class FakeSession:
    region_name = REGION

    def __init__(self, **clients):
        self.clients = clients

    def client(self, service_name: str):
        return self.clients[service_name]


@pytest.fixture
def here():
    return path.abspath(path.dirname(__file__))


@pytest.fixture
def ecs_client():
    return FakeEcsClient()


@pytest.fixture
def elb_client():
    return FakeElbClient()


@pytest.fixture
def route53_client():
    return FakeRoute53Client()


@pytest.fixture
def session(ecs_client, elb_client, route53_client):
    return FakeSession(ecs=ecs_client, elb=elb_client, route53=route53_client)


@pytest.fixture
def lb_settings(session):
    return SchedulerSettings(
        session=session,
        **{
            SchedulerSettings.cluster_arg: CLUSTER,
            SchedulerSettings.service_role_arg: "ecsServiceRole",
            SchedulerSettings.zone_id_arg: ZONE_ID,
            SchedulerSettings.internal_sg_arg: "sg-internal",
            SchedulerSettings.external_sg_arg: "sg-external",
            SchedulerSettings.internal_subnets_arg: "subnet-a,subnet-b",
            SchedulerSettings.external_subnets_arg: ["subnet-c", "subnet-d"],
        },
    )
