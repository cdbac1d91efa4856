#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Streamers writing the logs of an App to a text sink.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_scheduler.common.context import RequestContext
    from ecs_scheduler.common.settings import SchedulerSettings

from abc import ABC, abstractmethod
from time import sleep

from compose_x_common.compose_x_common import keyisset

from ecs_scheduler.common import LOG
from ecs_scheduler.common.context import check_context
from ecs_scheduler.exceptions import OperationCancelled

KINESIS_LOGS = "kinesis"


class LogsStreamer(ABC):
    @abstractmethod
    def stream_logs(self, app_id: str, sink, ctx: RequestContext = None) -> None:
        pass


class NullLogsStreamer(LogsStreamer):
    """
    Used when logs are not enabled.
    """

    def stream_logs(self, app_id: str, sink, ctx: RequestContext = None) -> None:
        sink.write("Logs are disabled\n")


class KinesisLogsStreamer(LogsStreamer):
    """
    Reads the new records of the Kinesis stream named after the App, from all shards, until the
    context is cancelled or its deadline passes.

    :ivar float poll_interval: seconds to wait when no shard returned records
    """

    def __init__(self, client, poll_interval: float = 1.0):
        self.client = client
        self.poll_interval = poll_interval

    def list_shards(self, stream_name: str) -> list:
        shards = []
        list_args = {"StreamName": stream_name}
        while True:
            shards_r = self.client.list_shards(**list_args)
            shards += shards_r["Shards"]
            if not keyisset("NextToken", shards_r):
                break
            list_args = {"NextToken": shards_r["NextToken"]}
        return shards

    def shard_iterators(self, stream_name: str) -> dict:
        return {
            shard["ShardId"]: self.client.get_shard_iterator(
                StreamName=stream_name,
                ShardId=shard["ShardId"],
                ShardIteratorType="LATEST",
            )["ShardIterator"]
            for shard in self.list_shards(stream_name)
        }

    def stream_logs(self, app_id: str, sink, ctx: RequestContext = None) -> None:
        iterators = self.shard_iterators(app_id)
        LOG.debug(f"{app_id} - Reading logs from {len(iterators)} shards")
        try:
            while iterators:
                check_context(ctx)
                received = 0
                for shard_id, iterator in list(iterators.items()):
                    records_r = self.client.get_records(ShardIterator=iterator)
                    for record in records_r["Records"]:
                        data = record["Data"]
                        if isinstance(data, bytes):
                            data = data.decode("utf-8", errors="replace")
                        sink.write(f"{data}\n")
                        received += 1
                    if keyisset("NextShardIterator", records_r):
                        iterators[shard_id] = records_r["NextShardIterator"]
                    else:
                        del iterators[shard_id]
                if not received:
                    sleep(self.poll_interval)
        except OperationCancelled:
            LOG.debug(f"{app_id} - Stopped streaming logs")


def new_logs_streamer(settings: SchedulerSettings) -> LogsStreamer:
    if settings.logs_stream == KINESIS_LOGS:
        return KinesisLogsStreamer(settings.session.client("kinesis"))
    return NullLogsStreamer()
