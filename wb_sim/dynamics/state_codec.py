from dataclasses import dataclass

import numpy as np

from wb_sim.errors import DimensionMismatch
from wb_sim.utils.transforms import quat_derivative, quat_to_rotm


@dataclass(frozen=True)
class StateParams:
    """
    状态向量 chi 解码后的具名分量
    x_b:     基座位置 (3,) 世界系
    qt_b:    基座姿态四元数 (4,) (x, y, z, w)
    q_j:     关节位置 (n_dof,)
    dx_b:    基座线速度 (3,) 世界系
    omega_b: 基座角速度 (3,) 世界系
    dq_j:    关节速度 (n_dof,)
    """
    x_b: np.ndarray
    qt_b: np.ndarray
    q_j: np.ndarray
    dx_b: np.ndarray
    omega_b: np.ndarray
    dq_j: np.ndarray

    @property
    def n_dof(self):
        return self.q_j.shape[0]

    @property
    def base_pose(self):
        return np.concatenate([self.x_b, self.qt_b])

    @property
    def base_vel(self):
        """mixed 约定的基座速度 [dx_b; omega_b]"""
        return np.concatenate([self.dx_b, self.omega_b])

    @property
    def nu(self):
        """广义速度 nu = [dx_b; omega_b; dq_j]"""
        return np.concatenate([self.dx_b, self.omega_b, self.dq_j])

    @property
    def R_b(self):
        return quat_to_rotm(self.qt_b)


class StateCodec:
    def __init__(self, n_dof):
        """
        积分状态 chi 的打包/解包
        chi = [x_b(3), qt_b(4), q_j(n), dx_b(3), omega_b(3), dq_j(n)]，长度 2n + 13
        """
        if n_dof < 0:
            raise DimensionMismatch(f"n_dof 不能为负: {n_dof}")
        self.n_dof = int(n_dof)
        self.state_length = 2 * self.n_dof + 13

        n = self.n_dof
        # 各分量在 chi 中的切片
        self._x_b = slice(0, 3)
        self._qt_b = slice(3, 7)
        self._q_j = slice(7, 7 + n)
        self._dx_b = slice(7 + n, 10 + n)
        self._omega_b = slice(10 + n, 13 + n)
        self._dq_j = slice(13 + n, 13 + 2 * n)

    def _check(self, chi):
        chi = np.asarray(chi, dtype=float)
        if chi.ndim != 1 or chi.shape[0] != self.state_length:
            raise DimensionMismatch(
                f"状态向量长度不匹配: 输入 {chi.shape}, 期望 ({self.state_length},)")
        return chi

    def decode(self, chi):
        chi = self._check(chi)
        return StateParams(
            x_b=chi[self._x_b].copy(),
            qt_b=chi[self._qt_b].copy(),
            q_j=chi[self._q_j].copy(),
            dx_b=chi[self._dx_b].copy(),
            omega_b=chi[self._omega_b].copy(),
            dq_j=chi[self._dq_j].copy(),
        )

    def encode(self, stp):
        if stp.n_dof != self.n_dof:
            raise DimensionMismatch(f"关节数不匹配: 输入 {stp.n_dof}, 期望 {self.n_dof}")
        return np.concatenate([stp.x_b, stp.qt_b, stp.q_j, stp.dx_b, stp.omega_b, stp.dq_j])

    def from_components(self, x_b, qt_b, q_j, dx_b=None, omega_b=None, dq_j=None):
        """由具名分量构造 chi，缺省的速度分量置零"""
        n = self.n_dof
        stp = StateParams(
            x_b=np.asarray(x_b, dtype=float).reshape(3),
            qt_b=np.asarray(qt_b, dtype=float).reshape(4),
            q_j=np.asarray(q_j, dtype=float).reshape(n),
            dx_b=np.zeros(3) if dx_b is None else np.asarray(dx_b, dtype=float).reshape(3),
            omega_b=np.zeros(3) if omega_b is None else np.asarray(omega_b, dtype=float).reshape(3),
            dq_j=np.zeros(n) if dq_j is None else np.asarray(dq_j, dtype=float).reshape(n),
        )
        return self.encode(stp)

    def derivative(self, stp, dnu):
        """
        组装 dchi/dt = [dx_b; dqt_b; dq_j; dnu]
        基座姿态的导数不能直接用角速度，必须经过四元数运动学映射
        """
        dnu = np.asarray(dnu, dtype=float)
        if dnu.shape != (self.n_dof + 6,):
            raise DimensionMismatch(
                f"广义加速度维度不匹配: 输入 {dnu.shape}, 期望 ({self.n_dof + 6},)")

        dqt_b = quat_derivative(stp.qt_b, stp.omega_b)
        return np.concatenate([stp.dx_b, dqt_b, stp.dq_j, dnu])

    def positions(self, chi):
        """
        从单个状态或 (N, len) 轨迹中取出位置部分 [x_b, qt_b, q_j]
        """
        chi = np.asarray(chi, dtype=float)
        if chi.shape[-1] != self.state_length:
            raise DimensionMismatch(
                f"状态向量长度不匹配: 输入 {chi.shape[-1]}, 期望 {self.state_length}")
        return chi[..., :7 + self.n_dof].copy()


def link_trajectory(model, chi_traj, link):
    """
    沿状态轨迹计算某个连杆 (或 frame) 的世界系位姿
    Args:
        model: RigidBodyModel
        chi_traj: (N, 2n+13) 状态轨迹
        link: 连杆 / frame 名
    Returns:
        p (N, 3), R (N, 3, 3)
    """
    codec = StateCodec(model.n_dof)
    pos = np.atleast_2d(codec.positions(chi_traj))
    p = np.zeros((pos.shape[0], 3))
    R = np.zeros((pos.shape[0], 3, 3))
    for k, q in enumerate(pos):
        p[k], R[k] = model.forward_kinematics(q[:7], q[7:], link)
    return p, R
