# wb_sim/__init__.py
from wb_sim.errors import ConstraintConfigError, DimensionMismatch, IntegrationError, WBSimError

__version__ = "0.1.0"
