#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Conversion of a Process to the ECS task definition register input, and back from a described task definition.

Memory is stored in MiB by ECS: bytes are truncated down to whole MiB when registering,
and multiplied back exactly when read.
"""

from __future__ import annotations

import shlex

from compose_x_common.compose_x_common import keyisset, set_else_none

from ecs_scheduler.ecs.ecs_params import MB
from ecs_scheduler.scheduler import PortMapping, Process


def command_to_list(command: str) -> list:
    return shlex.split(command) if command else []


def command_from_list(command: list) -> str:
    return shlex.join(command) if command else ""


def env_to_key_value_pairs(env: dict) -> list:
    return [{"name": name, "value": str(env[name])} for name in sorted(env)]


def env_from_key_value_pairs(pairs: list) -> dict:
    return {pair["name"]: set_else_none("value", pair, alt_value="") for pair in pairs}


def task_definition_input(process: Process) -> dict:
    """
    Returns the register_task_definition arguments, but the family which is set by the App client.

    :param Process process:
    :rtype: dict
    """
    container = {
        "name": process.type,
        "cpu": process.cpu_shares,
        "essential": True,
        "environment": env_to_key_value_pairs(process.env),
        "portMappings": [
            {"hostPort": port.host, "containerPort": port.container}
            for port in process.ports
        ],
    }
    command = command_to_list(process.command)
    if command:
        container["command"] = command
    if process.image:
        container["image"] = process.image
    memory = process.memory_limit // MB
    if memory:
        container["memory"] = memory
    return {"containerDefinitions": [container]}


def task_definition_to_process(task_definition: dict) -> Process:
    """
    Builds the Process from the first container of the task definition

    :param dict task_definition: as returned by ECS describe_task_definition
    :raises ValueError: when the task definition has no container
    """
    if not keyisset("containerDefinitions", task_definition):
        raise ValueError(
            "task definition had no container definitions",
            set_else_none("taskDefinitionArn", task_definition),
        )
    container = task_definition["containerDefinitions"][0]
    return Process(
        container["name"],
        command=command_from_list(set_else_none("command", container, alt_value=[])),
        env=env_from_key_value_pairs(
            set_else_none("environment", container, alt_value=[])
        ),
        image=set_else_none("image", container),
        cpu_shares=set_else_none("cpu", container, alt_value=0),
        memory_limit=set_else_none("memory", container, alt_value=0) * MB,
        ports=[
            PortMapping(
                port.get("hostPort", port["containerPort"]),
                port["containerPort"],
            )
            for port in set_else_none("portMappings", container, alt_value=[])
        ],
    )
