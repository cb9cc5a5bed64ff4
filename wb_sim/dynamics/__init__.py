# wb_sim/dynamics/__init__.py
from wb_sim.dynamics.constraints import ConstraintConfig, ContactGroup, ContactPoint, FrictionCone, Source
from wb_sim.dynamics.forward_dynamics import ForwardDynamics
from wb_sim.dynamics.payload import ContactModel, ExternalForce, Payload
from wb_sim.dynamics.solver import ConstrainedAccelerationSolver, damped_pinv
from wb_sim.dynamics.state_codec import StateCodec, StateParams, link_trajectory
