#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""Tests for the Scheduler, over the in-memory ECS, ELB and Route53 clients."""

import pytest
from conftest import CLUSTER, ZONE_NAME, client_error

from ecs_scheduler.common.settings import SchedulerSettings
from ecs_scheduler.ecs.ecs_scheduler import new_load_balanced_scheduler, new_scheduler
from ecs_scheduler.exceptions import SchedulerConfigError
from ecs_scheduler.scheduler import App, PortMapping, Process, process_types


@pytest.fixture
def scheduler(lb_settings):
    return new_load_balanced_scheduler(lb_settings)


def acme_web():
    return Process(
        "web",
        command="./bin/web --port 8080",
        image="acme/web:latest",
        instances=2,
        ports=[PortMapping(80, 8080)],
    )


def acme_worker():
    return Process("worker", command="./bin/worker", image="acme/web:latest", instances=1)


def test_acme_scenario(scheduler, ecs_client, elb_client, route53_client):
    """
    Submit web and worker, then only worker: the web service and its load balancer and CNAME are removed.
    """
    scheduler.submit(App("acme", [acme_web(), acme_worker()]))

    assert set(ecs_client.services) == {"acme-web", "acme-worker"}
    assert set(ecs_client.task_definitions) == {"acme-web", "acme-worker"}
    assert len(elb_client.load_balancers) == 1
    elb = list(elb_client.load_balancers.values())[0]
    assert elb["Scheme"] == "internal"
    assert route53_client.records[f"acme.{ZONE_NAME}"]["ResourceRecords"] == [
        {"Value": elb["DNSName"]}
    ]
    web_service = ecs_client.services["acme-web"]
    assert web_service["loadBalancers"] == [
        {
            "containerName": "web",
            "containerPort": 8080,
            "loadBalancerName": elb["LoadBalancerName"],
        }
    ]
    assert web_service["roleArn"] == "ecsServiceRole"

    instances = scheduler.instances("acme")
    assert len(instances) == 3
    assert sorted(instance.process.type for instance in instances) == [
        "web",
        "web",
        "worker",
    ]

    scheduler.submit(App("acme", [acme_worker()]))
    assert set(ecs_client.services) == {"acme-worker"}
    assert not elb_client.load_balancers
    assert not route53_client.records
    instances = scheduler.instances("acme")
    assert len(instances) == 1
    assert instances[0].process.type == "worker"
    assert instances[0].state == "RUNNING"


def test_submit_converges_from_any_state(scheduler):
    scheduler.submit(
        App(
            "acme",
            [acme_web(), acme_worker(), Process("clock", image="acme/web:latest")],
        )
    )
    app = App("acme", [Process("worker", image="acme/web:latest", instances=3)])
    scheduler.submit(app)
    assert process_types(scheduler.processes("acme")) == {"worker"}

    scheduler.submit(App("acme", [acme_web()]))
    assert process_types(scheduler.processes("acme")) == {"web"}


def test_submit_is_idempotent(scheduler, ecs_client, elb_client, route53_client):
    app = App("acme", [acme_web(), acme_worker()])
    scheduler.submit(app)
    elb_names = set(elb_client.load_balancers)
    scheduler.submit(App("acme", [acme_web(), acme_worker()]))

    assert set(elb_client.load_balancers) == elb_names
    assert set(ecs_client.services) == {"acme-web", "acme-worker"}
    assert ecs_client.services["acme-web"]["taskDefinition"].endswith("acme-web:2")
    assert len(ecs_client.tasks) == 3
    assert len(route53_client.records) == 1
    assert ecs_client.calls.count("create_service") == 2


def test_processes_reads_back_the_definitions(scheduler):
    scheduler.submit(App("acme", [acme_web()]))
    process = scheduler.processes("acme")[0]
    assert process.type == "web"
    assert process.command == "./bin/web --port 8080"
    assert process.image == "acme/web:latest"
    assert process.instances == 2
    assert process.ports == [PortMapping(80, 8080)]
    assert process.load_balancer is not None


def test_apps_are_isolated(scheduler, ecs_client):
    scheduler.submit(App("acme", [acme_worker()]))
    scheduler.submit(App("other", [acme_worker()]))
    scheduler.remove("acme")
    assert set(ecs_client.services) == {"other-worker"}
    assert process_types(scheduler.processes("acme")) == set()


def add_foreign_service(ecs_client, service_name: str, container_name: str):
    """
    Creates a service outside of the scheduler, with a task definition family of the same name.
    """
    ecs_client.register_task_definition(
        family=service_name,
        containerDefinitions=[{"name": container_name, "image": "foreign/image"}],
    )
    ecs_client.create_service(
        cluster=CLUSTER,
        serviceName=service_name,
        taskDefinition=service_name,
        desiredCount=2,
    )


def test_apps_sharing_a_prefix_are_isolated(scheduler, ecs_client):
    scheduler.submit(App("acme", [acme_worker()]))
    add_foreign_service(ecs_client, "acme-web-api", "api")
    add_foreign_service(ecs_client, "acme-clock", "cron")

    assert process_types(scheduler.processes("acme")) == {"worker"}
    assert [instance.process.type for instance in scheduler.instances("acme")] == [
        "worker"
    ]
    scheduler.remove("acme")
    assert set(ecs_client.services) == {"acme-web-api", "acme-clock"}


@pytest.mark.parametrize("app_id", ["acme-web", "acme web", ""])
def test_app_id_cannot_hold_the_delimiter(app_id):
    with pytest.raises(ValueError):
        App(app_id, [acme_worker()])


def test_process_type_cannot_hold_the_delimiter():
    with pytest.raises(ValueError):
        Process("web-api", image="acme/web:latest")


def test_remove_missing_app(scheduler, ecs_client):
    scheduler.remove("acme")
    assert "delete_service" not in ecs_client.calls


def test_submit_failure_names_the_process(scheduler, ecs_client):
    ecs_client.fail_on["create_service"] = client_error(
        "CreateService", "AccessDeniedException", "Not allowed"
    )
    with pytest.raises(Exception) as error:
        scheduler.submit(App("acme", [acme_worker()]))
    assert error.value.process_type == "worker"
    assert error.value.response["Error"]["Code"] == "AccessDeniedException"


def test_submit_stops_at_first_failure(scheduler, ecs_client):
    scheduler.submit(App("acme", [acme_worker()]))
    ecs_client.fail_on["register_task_definition"] = client_error(
        "RegisterTaskDefinition", "ClientException", "Invalid image"
    )
    with pytest.raises(Exception) as error:
        scheduler.submit(App("acme", [Process("clock", image="acme/web")]))
    assert error.value.process_type == "clock"
    assert set(ecs_client.services) == {"acme-worker"}


def test_instances_partial_results(scheduler, ecs_client):
    scheduler.submit(App("acme", [acme_worker()]))
    ecs_client.fail_on["describe_task_definition"] = client_error(
        "DescribeTaskDefinition", "ThrottlingException", "Rate exceeded"
    )
    with pytest.raises(Exception) as error:
        scheduler.instances("acme")
    assert error.value.partial_results == []


def test_stop_instance(scheduler, ecs_client):
    scheduler.submit(App("acme", [acme_worker()]))
    instance = scheduler.instances("acme")[0]
    scheduler.stop(instance.id)
    assert not ecs_client.tasks
    assert ecs_client.services["acme-worker"]["desiredCount"] == 1


def test_scale(scheduler, ecs_client):
    scheduler.submit(App("acme", [acme_worker()]))
    scheduler.scale("acme", "worker", 4)
    assert len(scheduler.instances("acme")) == 4


def test_new_scheduler_without_cluster(session):
    with pytest.raises(SchedulerConfigError) as error:
        new_scheduler(SchedulerSettings(session=session))
    assert error.value.field_name == SchedulerSettings.cluster_arg


def test_new_load_balanced_scheduler_missing_zone(session, ecs_client):
    settings = SchedulerSettings(
        session=session,
        **{
            SchedulerSettings.cluster_arg: CLUSTER,
            SchedulerSettings.service_role_arg: "ecsServiceRole",
        },
    )
    with pytest.raises(SchedulerConfigError) as error:
        new_load_balanced_scheduler(settings)
    assert error.value.field_name == SchedulerSettings.zone_id_arg
    assert not ecs_client.calls


def test_ecs_only_scheduler_ignores_ports(session, ecs_client, elb_client):
    scheduler = new_scheduler(
        SchedulerSettings(session=session, **{SchedulerSettings.cluster_arg: CLUSTER})
    )
    scheduler.submit(App("acme", [acme_web()]))
    assert ecs_client.services["acme-web"]["loadBalancers"] == []
    assert not elb_client.load_balancers
