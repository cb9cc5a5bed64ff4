import logging

import numpy as np
import pytest

from wb_sim.dynamics.model_service import PointKinematics, RigidBodyModel
from wb_sim.dynamics.state_codec import StateCodec
from wb_sim.utils.transforms import quat_to_rotm, skew

logging.getLogger("wb_sim").setLevel(logging.DEBUG)

POINT_OFFSETS = {
    "l_sole": np.array([0.0, 0.1, -0.8]),
    "r_sole": np.array([0.0, -0.1, -0.8]),
    "l_hand": np.array([0.3, 0.25, 0.2]),
    "r_hand": np.array([0.3, -0.25, 0.2]),
}


class SyntheticModel(RigidBodyModel):
    """
    不依赖 Pinocchio 的纯 NumPy 模型服务
    M, c 是状态的确定性函数；每个点固定在基座上 (偏移 POINT_OFFSETS)，
    雅可比的关节列是随机但固定的矩阵
    """

    def __init__(self, n_dof=8, seed=0):
        rng = np.random.default_rng(seed)
        self.n_dof = n_dof
        n = n_dof + 6

        A = rng.standard_normal((n, n))
        self.M0 = A @ A.T / n + np.eye(n)
        self.c0 = rng.standard_normal(n)
        self.G = {name: rng.standard_normal((6, n_dof)) for name in POINT_OFFSETS}
        self.D = {name: 0.1 * rng.standard_normal((6, n)) for name in POINT_OFFSETS}

        self.updates = 0
        self._stp = None

    def has_point(self, name):
        return name in POINT_OFFSETS

    def update(self, stp):
        self.updates += 1
        self._stp = stp

    def get_dynamics(self):
        stp = self._stp
        n = self.n_dof + 6
        M = self.M0 + np.diag(np.concatenate([np.zeros(6), 0.1 * stp.q_j ** 2]))
        c = self.c0 + 0.1 * stp.nu
        assert M.shape == (n, n)
        return M, c

    def forward_kinematics(self, base_pose, q_j, name):
        R = quat_to_rotm(base_pose[3:7])
        return base_pose[:3] + R @ POINT_OFFSETS[name], R

    def get_point(self, name):
        stp = self._stp
        p, R = self.forward_kinematics(stp.base_pose, stp.q_j, name)
        r = R @ POINT_OFFSETS[name]

        J = np.zeros((6, self.n_dof + 6))
        J[:3, :3] = np.eye(3)
        J[:3, 3:6] = -skew(r)
        J[3:6, 3:6] = np.eye(3)
        J[:, 6:] = self.G[name]
        return PointKinematics(p=p, R=R, J=J, Jd_qd=self.D[name] @ stp.nu)


@pytest.fixture
def model():
    return SyntheticModel()


@pytest.fixture
def codec(model):
    return StateCodec(model.n_dof)


@pytest.fixture
def chi0(model, codec):
    rng = np.random.default_rng(1)
    n = model.n_dof
    return codec.from_components(
        x_b=[0.0, 0.0, 0.8],
        qt_b=[0.0, 0.0, 0.0, 1.0],
        q_j=0.1 * rng.standard_normal(n),
        dx_b=0.05 * rng.standard_normal(3),
        omega_b=0.05 * rng.standard_normal(3),
        dq_j=0.1 * rng.standard_normal(n),
    )
