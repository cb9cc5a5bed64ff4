import numpy as np

from wb_sim.planning.trajectory import FixedTrajectory


class BaseController:
    """
    所有力矩控制器的基类（接口定义）
    前向动力学每次求值都会调用:
        controller(t, M, c, state, nu, Jc, Jd_qd, constraints) -> tau (n_dof,)
    M, c 是 mixed 约定下的全身动力学量 (n_dof + 6)，state 是 StateParams
    """
    name = "Base"

    def compute(self, t, M, c, state, nu, Jc, Jd_qd, constraints):
        raise NotImplementedError

    def __call__(self, t, M, c, state, nu, Jc, Jd_qd, constraints):
        return self.compute(t, M, c, state, nu, Jc, Jd_qd, constraints)


class ZeroTorqueController(BaseController):
    """零力矩：机器人只在重力和接触约束下运动"""
    name = "Zero_Torque"

    def compute(self, t, M, c, state, nu, Jc, Jd_qd, constraints):
        return np.zeros(state.n_dof)


def _as_trajectory(q_ref, trajectory):
    if trajectory is not None:
        return trajectory
    if q_ref is None:
        raise ValueError("必须给定 q_ref 或 trajectory")
    return FixedTrajectory(q_ref)


class JointPDController(BaseController):
    def __init__(self, kp, kd, q_ref=None, trajectory=None, bias_compensation=True):
        """
        关节空间 PD + 动力学补偿
        Args:
            kp (np.array): 比例增益 (标量或 n_dof 维)
            kd (np.array): 微分增益
            q_ref: 固定的目标关节角 (与 trajectory 二选一)
            trajectory: 参考轨迹，get_state(t) -> (q, dq, ddq)
            bias_compensation: 是否加上关节部分的偏置力 c_j (重力 + 科氏力)
        """
        self.kp = np.array(kp, dtype=float)
        self.kd = np.array(kd, dtype=float)
        self.trajectory = _as_trajectory(q_ref, trajectory)
        self.bias_compensation = bias_compensation
        self.name = "PD_Bias_Comp" if bias_compensation else "Pure_PD"

    def compute(self, t, M, c, state, nu, Jc, Jd_qd, constraints):
        q_ref, dq_ref, _ = self.trajectory.get_state(t)

        # 1. PD 反馈项
        e = q_ref - state.q_j
        de = dq_ref - state.dq_j
        tau = self.kp * e + self.kd * de

        # 2. 偏置力补偿 (只取关节部分)
        if self.bias_compensation:
            tau = tau + c[6:]
        return tau


class ComputedTorqueController(BaseController):
    def __init__(self, kp, kd, q_ref=None, trajectory=None):
        """
        关节空间计算力矩控制 (CTC)
        tau = M_jj * (ddq_ref + kp*e + kd*de) + c_j
        浮动基座与接触力的耦合被忽略，只是关节空间的近似解耦
        """
        self.name = "Computed_Torque_Control"
        self.kp = np.array(kp, dtype=float)
        self.kd = np.array(kd, dtype=float)
        self.trajectory = _as_trajectory(q_ref, trajectory)

    def compute(self, t, M, c, state, nu, Jc, Jd_qd, constraints):
        q_ref, dq_ref, ddq_ref = self.trajectory.get_state(t)

        e = q_ref - state.q_j
        de = dq_ref - state.dq_j
        acc_des = ddq_ref + self.kp * e + self.kd * de

        M_jj = M[6:, 6:]
        return M_jj @ acc_des + c[6:]
