#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Nameservers manage the CNAME records pointing to the load balancers.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from compose_x_common.compose_x_common import keyisset

from ecs_scheduler.common import LOG
from ecs_scheduler.exceptions import SchedulerConfigError
from ecs_scheduler.lb.lb_params import CNAME_RECORD, DEFAULT_RECORD_TTL

ZONE_ID_SETTING = "ZoneID"

ZONES_PATTERN = re.compile(r"^Z[0-9A-Z]+$")
LAST_DOT_RE = re.compile(r"(\.{1}$)")


def validate_zone_id(zone_id: str) -> str:
    """
    Accepts the zone ID alone or in the /hostedzone/<id> format returned by the API

    :raises SchedulerConfigError: if the zone ID is not valid
    """
    zone_id = zone_id.split(r"/")[-1] if zone_id else zone_id
    if not zone_id or not ZONES_PATTERN.match(zone_id):
        raise SchedulerConfigError(
            ZONE_ID_SETTING,
            f"is not valid. Got {zone_id}, expected {ZONES_PATTERN.pattern}",
        )
    return zone_id


class Nameserver(ABC):
    """
    Interface to create and delete DNS records in a zone.
    """

    @abstractmethod
    def create_or_update_record(self, host: str, target: str) -> None:
        pass

    @abstractmethod
    def delete_record(self, host: str, target: str = None) -> None:
        """
        When target is set, the record is only deleted if it still points to it.
        """


class Route53Nameserver(Nameserver):
    """
    Creates CNAME records in a Route53 hosted zone, ``<host>.<zone name>``.

    :ivar str zone_id:
    :ivar int ttl:
    """

    def __init__(self, client, zone_id: str, ttl: int = DEFAULT_RECORD_TTL):
        self.client = client
        self.zone_id = validate_zone_id(zone_id)
        self.ttl = ttl
        self._zone_name = None

    @property
    def zone_name(self) -> str:
        """
        Zone name, with its trailing dot.
        """
        if self._zone_name is None:
            zone_r = self.client.get_hosted_zone(Id=self.zone_id)["HostedZone"]
            self._zone_name = zone_r["Name"]
            if not self._zone_name.endswith("."):
                self._zone_name = f"{self._zone_name}."
        return self._zone_name

    def fqdn(self, host: str) -> str:
        return f"{LAST_DOT_RE.sub('', host)}.{self.zone_name}"

    def create_or_update_record(self, host: str, target: str) -> None:
        """
        UPSERT of the CNAME record, so that calling it again with the same values is a no-op.
        """
        record_name = self.fqdn(host)
        self.client.change_resource_record_sets(
            HostedZoneId=self.zone_id,
            ChangeBatch={
                "Comment": f"CNAME for {host}",
                "Changes": [
                    {
                        "Action": "UPSERT",
                        "ResourceRecordSet": {
                            "Name": record_name,
                            "Type": CNAME_RECORD,
                            "TTL": self.ttl,
                            "ResourceRecords": [{"Value": target}],
                        },
                    }
                ],
            },
        )
        LOG.info(f"{record_name} - CNAME set to {target}")

    def find_record(self, host: str):
        """
        :return: the CNAME record set for the host, None if not found
        :rtype: dict
        """
        record_name = self.fqdn(host)
        records_r = self.client.list_resource_record_sets(
            HostedZoneId=self.zone_id,
            StartRecordName=record_name,
            StartRecordType=CNAME_RECORD,
            MaxItems="1",
        )
        if not keyisset("ResourceRecordSets", records_r):
            return None
        record = records_r["ResourceRecordSets"][0]
        if (
            record["Name"].lower() == record_name.lower()
            and record["Type"] == CNAME_RECORD
        ):
            return record
        return None

    def delete_record(self, host: str, target: str = None) -> None:
        """
        Deletes the CNAME record. Route53 requires the current value to delete, so it is looked up first.
        A record that does not exist is already deleted.
        """
        record = self.find_record(host)
        if record is None:
            LOG.debug(f"{self.fqdn(host)} - No CNAME record to delete")
            return
        values = [value["Value"] for value in record.get("ResourceRecords", [])]
        if target and target not in values:
            LOG.info(f"{record['Name']} - CNAME points to {values}, not {target}. Keeping it")
            return
        self.client.change_resource_record_sets(
            HostedZoneId=self.zone_id,
            ChangeBatch={
                "Comment": f"Delete CNAME for {host}",
                "Changes": [{"Action": "DELETE", "ResourceRecordSet": record}],
            },
        )
        LOG.info(f"{record['Name']} - CNAME deleted")
