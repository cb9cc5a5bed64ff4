from dataclasses import dataclass, field
from typing import List

import yaml

from wb_sim.dynamics.solver import DEFAULT_PINV_DAMP, DEFAULT_PINV_TOL


@dataclass
class SolverConfig:
    pinv_tol: float = DEFAULT_PINV_TOL
    pinv_damp: float = DEFAULT_PINV_DAMP
    mass_correction: float = 0.0


@dataclass
class IntegratorConfig:
    t_start: float = 0.0
    t_end: float = 2.0
    sim_step: float = 0.01
    method: str = "BDF"
    rtol: float = 1e-3
    atol: float = 1e-4
    fixed_step: bool = False


@dataclass
class StanceConfig:
    # [左脚, 右脚]
    feet_on_ground: List[bool] = field(default_factory=lambda: [True, True])
    foot_frames: List[str] = field(default_factory=lambda: ["l_sole", "r_sole"])
    # [左手, 右手]，手扶住环境时约束手的位姿
    hands_in_contact: List[bool] = field(default_factory=lambda: [False, False])
    hand_frames: List[str] = field(default_factory=lambda: ["l_hand", "r_hand"])
    pose_correction: bool = False
    pos_gain: float = 0.0
    vel_gain: float = 0.0


@dataclass
class SimConfig:
    solver: SolverConfig = field(default_factory=SolverConfig)
    integrator: IntegratorConfig = field(default_factory=IntegratorConfig)
    stance: StanceConfig = field(default_factory=StanceConfig)

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        solver = data.get("solver", {}) or {}
        integ = data.get("integrator", {}) or {}
        stance = data.get("stance", {}) or {}

        return cls(
            solver=SolverConfig(
                pinv_tol=float(solver.get("pinv_tol", DEFAULT_PINV_TOL)),
                pinv_damp=float(solver.get("pinv_damp", DEFAULT_PINV_DAMP)),
                mass_correction=float(solver.get("mass_correction", 0.0)),
            ),
            integrator=IntegratorConfig(
                t_start=float(integ.get("t_start", 0.0)),
                t_end=float(integ.get("t_end", 2.0)),
                sim_step=float(integ.get("sim_step", 0.01)),
                method=str(integ.get("method", "BDF")),
                rtol=float(integ.get("rtol", 1e-3)),
                atol=float(integ.get("atol", 1e-4)),
                fixed_step=bool(integ.get("fixed_step", False)),
            ),
            stance=StanceConfig(
                feet_on_ground=[bool(v) for v in stance.get("feet_on_ground", [True, True])],
                foot_frames=list(stance.get("foot_frames", ["l_sole", "r_sole"])),
                hands_in_contact=[bool(v) for v in stance.get("hands_in_contact", [False, False])],
                hand_frames=list(stance.get("hand_frames", ["l_hand", "r_hand"])),
                pose_correction=bool(stance.get("pose_correction", False)),
                pos_gain=float(stance.get("pos_gain", 0.0)),
                vel_gain=float(stance.get("vel_gain", 0.0)),
            ),
        )


def load_config(path) -> SimConfig:
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    return SimConfig.from_dict(data)
