"""SQLAlchemy models for the railcar fleet lifecycle core."""

from railfleet.models.car import Car, FleetStatus, ScrapRecord, ScrapStatus  # noqa: F401
from railfleet.models.lease import (  # noqa: F401
    LeaseRider,
    LeaseRiderStatus,
    MasterLease,
    MasterLeaseStatus,
    RiderCar,
    RiderCarStatus,
)
from railfleet.models.assignment import AssignmentSource, AssignmentStatus, CarAssignment  # noqa: F401
from railfleet.models.triage import TriageEntry, TriageReason, TriageResolution  # noqa: F401
from railfleet.models.idle import IdlePeriod, IdleReason, StorageRate  # noqa: F401
from railfleet.models.transition_log import StateTransitionLog  # noqa: F401
from railfleet.models.release import CarRelease, ReleaseStatus, ReleaseType  # noqa: F401
