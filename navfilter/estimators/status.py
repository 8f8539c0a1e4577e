"""
Status flags describing which physical quantities are currently estimated.

Two bitmasks of this type are tracked by the estimator on every cycle:

    - the system status: what the process model declares as estimated,
      derived from the measurement status through implication rules;
    - the measurement status: the union of the flags declared by the
      measurements that are currently enabled and not timed out.

The state partitions that take part in predict/correct are a function of
the system status (see navfilter.estimators.state.State.set_system_status).
"""

from enum import IntFlag


class SystemStatus(IntFlag):
    """Bitmask of estimator status and observable quantities."""

    NONE = 0

    STATUS_ALIGNMENT = 0x1
    STATUS_DEGRADED = 0x2
    STATUS_READY = 0x4

    STATE_ROLLPITCH = 0x10
    STATE_YAW = 0x20

    STATE_RATE_XY = 0x100
    STATE_RATE_Z = 0x200

    STATE_XY_VELOCITY = 0x1000
    STATE_Z_VELOCITY = 0x2000

    STATE_XY_POSITION = 0x10000
    STATE_Z_POSITION = 0x20000


STATUS_MASK = (
    SystemStatus.STATUS_ALIGNMENT
    | SystemStatus.STATUS_DEGRADED
    | SystemStatus.STATUS_READY
)

STATE_MASK = (
    SystemStatus.STATE_ROLLPITCH
    | SystemStatus.STATE_YAW
    | SystemStatus.STATE_RATE_XY
    | SystemStatus.STATE_RATE_Z
    | SystemStatus.STATE_XY_VELOCITY
    | SystemStatus.STATE_Z_VELOCITY
    | SystemStatus.STATE_XY_POSITION
    | SystemStatus.STATE_Z_POSITION
)


def status_to_string(status: SystemStatus) -> str:
    """
    Render a status bitmask as a short human readable string.

    Example:
        >>> status_to_string(SystemStatus.STATE_ROLLPITCH | SystemStatus.STATE_YAW)
        'ROLLPITCH YAW'
    """
    status = SystemStatus(status)
    names = []
    for flag in SystemStatus:
        if flag is SystemStatus.NONE or not (status & flag):
            continue
        names.append(flag.name.replace('STATUS_', '').replace('STATE_', ''))
    return ' '.join(names) if names else 'NONE'
