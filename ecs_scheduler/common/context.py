#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Request context, checked by the listing loops at each page boundary.
"""

from __future__ import annotations

from threading import Event
from time import monotonic

from ecs_scheduler.exceptions import DeadlineExceeded, OperationCancelled


class RequestContext:
    """
    Carries the cancellation and deadline of one caller request.

    :ivar threading.Event cancelled: set it to cancel the operations using the context
    :ivar float deadline: time.monotonic() value after which operations stop
    """

    def __init__(self, timeout: float = None, cancelled: Event = None):
        self.cancelled = cancelled if cancelled is not None else Event()
        self.deadline = monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self.cancelled.set()

    @property
    def remaining(self):
        if self.deadline is None:
            return None
        return max(self.deadline - monotonic(), 0.0)

    def check(self) -> None:
        if self.cancelled.is_set():
            raise OperationCancelled("The request was cancelled")
        if self.deadline is not None and monotonic() >= self.deadline:
            raise DeadlineExceeded("The request deadline was exceeded")


def check_context(ctx: RequestContext = None) -> None:
    """Allows passing no context at all."""
    if ctx is not None:
        ctx.check()
