from __future__ import annotations

import logging

from trialbench._logging import format_event
from trialbench.models import CommandSpec, TrialResult
from trialbench.params import ParameterSet
from trialbench.transport import DeviceSession

_log = logging.getLogger("trialbench.invoker")


class TrialInvoker:
    """Runs one command through the device session's transport.

    The invoker does not retry and does not look at ``success``; a
    ``TransportError`` from an unreachable transport propagates unchanged.
    """

    def __init__(self, session: DeviceSession):
        self.session = session

    def invoke(self, command: CommandSpec, parameters: ParameterSet) -> TrialResult:
        serialized = parameters.serialize()
        _log.debug(
            format_event(
                "trial_send",
                command=command.command_id,
                params=serialized,
                timeout_sec=self.session.timeout_sec,
            )
        )
        reply = self.session.transport.execute(
            command.command_id, serialized, self.session.timeout_sec
        )
        result = TrialResult(
            success=bool(reply.success),
            duration_ms=float(reply.duration_ms),
            payload=None if reply.payload is None else bytes(reply.payload),
            diagnostic=None if reply.diagnostic is None else bytes(reply.diagnostic),
        )
        _log.info(
            format_event(
                "trial_invoke",
                command=command.command_id,
                success=result.success,
                duration_ms=f"{result.duration_ms:.3f}",
                payload_len=len(result.payload) if result.has_payload else "absent",
                diagnostic_len=(
                    len(result.diagnostic) if result.has_diagnostic else "absent"
                ),
            )
        )
        return result
