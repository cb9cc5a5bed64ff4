from dataclasses import dataclass

import numpy as np

from wb_sim.dynamics.constraints import ConstraintConfig, Source
from wb_sim.dynamics.forward_dynamics import ForwardDynamics
from wb_sim.dynamics.solver import ConstrainedAccelerationSolver
from wb_sim.simulation.initial_state import configure_feet, configure_hands, initial_state
from wb_sim.simulation.integrator import Integrator


@dataclass
class StanceSimulation:
    fdyn: ForwardDynamics
    chi0: np.ndarray
    integrator: Integrator

    def run(self):
        return self.integrator.run(self.fdyn, self.chi0)


def setup_stance(model, q_j, controller, cfg, force_solver=None):
    """
    站立场景的完整初始化:
    1. 世界系固定在着地脚上，生成一致的初始状态
    2. 用初始脚底位姿配置脚的约束组 (有手扶住环境时再加上手的约束组)
    3. 按配置构造求解器、前向动力学和积分器
    Args:
        cfg: SimConfig
    """
    stance = cfg.stance
    chi0 = initial_state(model, q_j, stance.feet_on_ground, stance.foot_frames)
    gains = dict(pose_correction=stance.pose_correction,
                 pos_gain=stance.pos_gain, vel_gain=stance.vel_gain)

    groups = {Source.FEET: configure_feet(
        model, chi0, feet_on_ground=stance.feet_on_ground, foot_frames=stance.foot_frames, **gains)}
    sources = [Source.FEET]
    if any(stance.hands_in_contact):
        groups[Source.HANDS] = configure_hands(
            model, chi0, hands_in_contact=stance.hands_in_contact,
            hand_frames=stance.hand_frames, **gains)
        sources.append(Source.HANDS)

    solver = ConstrainedAccelerationSolver(
        tol=cfg.solver.pinv_tol, damping=cfg.solver.pinv_damp, force_solver=force_solver)
    fdyn = ForwardDynamics(
        model, controller,
        constraints=ConstraintConfig(groups=groups),
        sources=sources,
        solver=solver,
        mass_correction=cfg.solver.mass_correction,
    )
    return StanceSimulation(fdyn=fdyn, chi0=chi0, integrator=Integrator.from_config(cfg.integrator))
