#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Loads an App and its processes from a YAML definition file.

.. code-block:: yaml

    id: acme
    processes:
      web:
        image: acme/web:latest
        command: ./bin/web --port 8080
        instances: 2
        memory: 512M
        ports:
          - "80:8080"
        exposure: external
      worker:
        image: acme/web:latest
        command: ./bin/worker
"""

from __future__ import annotations

import re
from json import loads

import jsonschema
import yaml
from compose_x_common.compose_x_common import keyisset, set_else_none
from importlib_resources import files as pkg_files

from ecs_scheduler.common import LOG
from ecs_scheduler.exceptions import InvalidAppDefinition
from ecs_scheduler.scheduler import EXPOSURE_INTERNAL, App, PortMapping, Process

NUMBERS_ONLY = re.compile(r"^\d+$")
MEMORY_RE = re.compile(r"^(?P<amount>[0-9.]+)\s*(?P<unit>[bBkKmMgG]?)[bB]?$")
MEMORY_FACTORS = {
    "": 1,
    "b": 1,
    "k": pow(2, 10),
    "m": pow(pow(2, 10), 2),
    "g": pow(pow(2, 10), 3),
}


def set_port_from_str(port: str) -> PortMapping:
    """
    Function to parse "host:container" or "port" strings

    :param str port:
    :raises ValueError: if the ports are not valid
    """
    port = str(port)
    if r"/" in port:
        protocol = port.split(r"/")[-1]
        if protocol != "tcp":
            raise ValueError("Protocol", protocol, "is not valid. Must be tcp")
        port = port.split(r"/")[0]
    if r":" in port:
        published, target = port.split(r":", 1)
    else:
        published = target = port
    for value in (published, target):
        if not NUMBERS_ONLY.match(value):
            raise ValueError("port is not valid", value, NUMBERS_ONLY.pattern)
        if not (1 <= int(value) < (2**16)):
            raise ValueError(f"port {value} is not between 1 and 65535")
    return PortMapping(int(published), int(target))


def set_memory_to_bytes(value) -> int:
    """
    Returns the amount of bytes. Integers are already bytes, strings can use b, k, m, g units.

    :param value: the string value
    :rtype: int
    """
    if isinstance(value, int):
        return value
    parts = MEMORY_RE.match(str(value).strip())
    if not parts:
        raise ValueError(f"Could not parse {value} to units")
    return int(float(parts.group("amount")) * MEMORY_FACTORS[parts.group("unit").lower()])


def validate_app_definition(definition: dict) -> None:
    source = pkg_files("ecs_scheduler").joinpath("specs/app-spec.json")
    LOG.debug(f"Validating against input schema {source}")
    try:
        jsonschema.validate(definition, loads(source.read_text()))
    except jsonschema.exceptions.ValidationError as error:
        raise InvalidAppDefinition(
            f"App definition is not conform to schema: {error.message}"
        ) from error


def process_from_definition(process_type: str, definition: dict) -> Process:
    return Process(
        process_type,
        command=set_else_none("command", definition, alt_value=""),
        env={
            str(key): str(value)
            for key, value in set_else_none("env", definition, alt_value={}).items()
        },
        image=definition["image"],
        cpu_shares=set_else_none("cpu_shares", definition, alt_value=0),
        memory_limit=set_memory_to_bytes(
            set_else_none("memory", definition, alt_value=0)
        ),
        instances=definition.get("instances", 1),
        ports=[
            set_port_from_str(port)
            for port in set_else_none("ports", definition, alt_value=[])
        ],
        exposure=set_else_none("exposure", definition, alt_value=EXPOSURE_INTERNAL),
        ssl_cert=set_else_none("ssl_cert", definition),
    )


def app_from_definition(definition: dict) -> App:
    """
    :raises InvalidAppDefinition:
    """
    validate_app_definition(definition)
    try:
        processes = [
            process_from_definition(process_type, process_definition)
            for process_type, process_definition in definition["processes"].items()
        ]
    except ValueError as error:
        raise InvalidAppDefinition(
            f"{definition['id']} - Invalid process definition", *error.args
        ) from error
    return App(definition["id"], processes)


def load_app_file(file_path: str) -> App:
    with open(file_path) as app_fd:
        content = yaml.safe_load(app_fd.read())
    if not isinstance(content, dict) or not keyisset("processes", content):
        raise InvalidAppDefinition(f"{file_path} - No processes defined")
    return app_from_definition(content)
