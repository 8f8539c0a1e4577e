"""Process and measurement model abstractions."""

from navfilter.models.measurement_model import Measurement, MeasurementModel
from navfilter.models.quaternion_system_model import GenericQuaternionSystemModel
from navfilter.models.system_model import (
    AccelerometerModel,
    BiasModel,
    GyroModel,
    KinematicInputs,
    SystemInput,
    SystemModel,
)

__all__ = [
    "SystemModel",
    "SystemInput",
    "KinematicInputs",
    "BiasModel",
    "GyroModel",
    "AccelerometerModel",
    "GenericQuaternionSystemModel",
    "MeasurementModel",
    "Measurement",
]
