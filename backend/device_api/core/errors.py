# backend/device_api/core/errors.py
"""
Exception taxonomy shared by the services, the stores and the API layer.
Routers translate these into HTTP status codes; nothing below the API
layer knows about HTTP.
"""


class DeviceAssignmentError(Exception):
    """Base class for every expected failure raised by the service."""


# ---------- authentication ----------

class InvalidCertificate(DeviceAssignmentError):
    """Client certificate is missing, unparsable or lacks serial/issuer CN."""


class InvalidToken(DeviceAssignmentError):
    """Bearer token failed signature, algorithm, time or subject checks."""


# ---------- business rules ----------

class DeviceNotFound(DeviceAssignmentError):
    pass


class AlreadyAssigned(DeviceAssignmentError):
    pass


class NoActiveAssignment(DeviceAssignmentError):
    pass


class Forbidden(DeviceAssignmentError):
    """Caller is not the current owner of the device."""


# ---------- storage ----------

class DuplicateSerial(DeviceAssignmentError):
    """A device with this serial number already exists in the store."""


class ConflictingActiveAssignment(DeviceAssignmentError):
    """The store already holds an active assignment for this device."""
