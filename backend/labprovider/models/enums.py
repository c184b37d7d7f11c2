# backend/labprovider/models/enums.py
from enum import Enum


class PowerState(str, Enum):
    POWERED_ON = "poweredOn"
    POWERED_OFF = "poweredOff"
    SUSPENDED = "suspended"


class RunStatus(str, Enum):
    """Terminal state of one provisioning run, in increasing severity."""
    DONE = "done"
    PARTIAL_FAILURE = "partial_failure"
    FATAL = "fatal"
