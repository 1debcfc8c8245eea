"""Example transport that simulates failures, unreachable devices and delays.

Load it from a registry with ``kind: flaky_transport:FlakyTransport`` after
putting ``examples/common`` on ``PYTHONPATH``. Behaviour is chosen with the
``mode`` option:

    mode            - "ok" (default), "always_fail", "random", "slow",
                      "unreachable"
    rate            - probability of failure for "random" mode (0-1; default 0.5)
    sleep_sec       - seconds to sleep per call in "slow" mode (default 1)
    payload_len     - bytes of payload returned on success (default 16)

Failures carry fixed-format sense data (NOT READY, medium not present).
"""

from __future__ import annotations

import random
import time
from typing import Any, Mapping

from trialbench.models import TransportError
from trialbench.transport import TransportReply

_NOT_READY_SENSE = bytes(
    [0x70, 0x00, 0x02, 0x00, 0x00, 0x00, 0x00, 0x0A, 0x00, 0x00, 0x00, 0x00, 0x3A, 0x00]
)


class FlakyTransport:
    def __init__(
        self,
        mode: str = "ok",
        rate: float = 0.5,
        sleep_sec: float = 1.0,
        payload_len: int = 16,
        seed: int | None = None,
    ):
        self.mode = mode
        self.rate = float(rate)
        self.sleep_sec = float(sleep_sec)
        self.payload_len = int(payload_len)
        self._random = random.Random(seed)

    def _payload(self, parameters: Mapping[str, Any]) -> bytes:
        seed = sum(len(str(value)) for value in parameters.values())
        return bytes((seed + idx) & 0xFF for idx in range(self.payload_len))

    def execute(
        self,
        command_id: str,
        parameters: Mapping[str, Any],
        timeout: float,
    ) -> TransportReply:
        started = time.perf_counter()
        if self.mode == "unreachable":
            raise TransportError(f"device for {command_id} is not reachable")

        failed = self.mode == "always_fail" or (
            self.mode == "random" and self._random.random() < self.rate
        )
        if self.mode == "slow":
            time.sleep(min(self.sleep_sec, timeout))
            if self.sleep_sec > timeout:
                failed = True

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if failed:
            return TransportReply(
                success=False, duration_ms=elapsed_ms, diagnostic=_NOT_READY_SENSE
            )
        return TransportReply(
            success=True,
            duration_ms=elapsed_ms,
            payload=self._payload(parameters),
            diagnostic=b"",
        )
