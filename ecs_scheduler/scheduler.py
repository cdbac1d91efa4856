#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Model of the Apps and Processes the scheduler reconciles, and of the Instances it observes.
"""

from __future__ import annotations

import re
from datetime import datetime

EXPOSURE_INTERNAL = "internal"
EXPOSURE_EXTERNAL = "external"

# App IDs and process types never contain "-", and every delimiter does.
NAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
DEFAULT_DELIMITER = "-"
DELIMITER_RE = re.compile(r"^[a-zA-Z0-9_-]*-[a-zA-Z0-9_-]*$")


def validate_name(name: str, kind: str) -> str:
    """
    :raises ValueError: if the app ID or process type is empty or not only letters, digits and _
    """
    if not name:
        raise ValueError(f"{kind} is required")
    if not NAME_RE.match(name):
        raise ValueError(f"{kind} {name} is not valid. Expected", NAME_RE.pattern)
    return name


class PortMapping:
    """
    Host to container port mapping for a process.
    """

    def __init__(self, host: int, container: int = None):
        self.host = int(host)
        self.container = int(container) if container is not None else int(host)

    def __eq__(self, other):
        if not isinstance(other, PortMapping):
            return NotImplemented
        return (self.host, self.container) == (other.host, other.container)

    def __repr__(self):
        return f"PortMapping({self.host}:{self.container})"


class Process:
    """
    One process type of an App, i.e. web or worker.

    :ivar str type: Name of the process, unique within the app
    :ivar str command: Shell-like command line
    :ivar dict env: Environment variables
    :ivar str image: Docker image reference
    :ivar int cpu_shares: CPU units
    :ivar int memory_limit: Memory limit in bytes
    :ivar int instances: Desired count of instances
    :ivar list[PortMapping] ports:
    :ivar str load_balancer: Name of the load balancer attached to the service
    :ivar str exposure: internal or external
    :ivar str ssl_cert: Certificate ARN for the HTTPS listener
    """

    def __init__(
        self,
        process_type: str,
        command: str = "",
        env: dict = None,
        image: str = None,
        cpu_shares: int = 0,
        memory_limit: int = 0,
        instances: int = 0,
        ports: list = None,
        load_balancer: str = None,
        exposure: str = EXPOSURE_INTERNAL,
        ssl_cert: str = None,
    ):
        validate_name(process_type, "process type")
        if exposure not in (EXPOSURE_INTERNAL, EXPOSURE_EXTERNAL):
            raise ValueError(
                "exposure must be one of",
                [EXPOSURE_INTERNAL, EXPOSURE_EXTERNAL],
                "Got",
                exposure,
            )
        self.type = process_type
        self.command = command or ""
        self.env = env if env is not None else {}
        self.image = image
        self.cpu_shares = int(cpu_shares)
        self.memory_limit = int(memory_limit)
        self.instances = int(instances)
        self.ports = ports if ports is not None else []
        self.load_balancer = load_balancer
        self.exposure = exposure
        self.ssl_cert = ssl_cert

    @property
    def external(self) -> bool:
        return self.exposure == EXPOSURE_EXTERNAL

    def __repr__(self):
        return f"Process({self.type})"


class App:
    """
    Application with its ordered processes.
    """

    def __init__(self, app_id: str, processes: list = None):
        validate_name(app_id, "app ID")
        self._id = app_id
        self.processes = processes if processes is not None else []
        types = [process.type for process in self.processes]
        if len(types) != len(set(types)):
            raise ValueError(f"{app_id} - Process types must be unique. Got", types)

    @property
    def id(self) -> str:
        return self._id

    def __repr__(self):
        return f"App({self.id})"


class Instance:
    """
    A running, pending or draining task of a Process.
    """

    def __init__(
        self, instance_id: str, process: Process, state: str, updated_at: datetime
    ):
        self.id = instance_id
        self.process = process
        self.state = state
        self.updated_at = updated_at

    def __repr__(self):
        return f"Instance({self.id}, {self.process.type}, {self.state})"


def process_types(processes: list) -> set:
    return {process.type for process in processes}


def diff_process_types(old: list, new: list) -> set:
    """
    Returns the process types found in old but no longer in new.

    :param list[Process] old: the processes currently running
    :param list[Process] new: the processes declared
    :rtype: set[str]
    """
    return process_types(old) - process_types(new)
