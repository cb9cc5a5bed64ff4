from dataclasses import dataclass, field
from typing import Dict, Sequence

import numpy as np

from wb_sim.errors import DimensionMismatch


@dataclass(frozen=True)
class PointKinematics:
    """
    单个约束点 / 受力点的运动学量 (mixed 约定，世界系对齐)
    p:     位置 (3,)
    R:     姿态旋转矩阵 (3, 3)
    J:     雅可比 (6, n_dof + 6)，行顺序 [线速度; 角速度]
    Jd_qd: dJ/dt * nu (6,)，即 nu_dot = 0 时的经典加速度
    """
    p: np.ndarray
    R: np.ndarray
    J: np.ndarray
    Jd_qd: np.ndarray


@dataclass(frozen=True)
class DynamicsQuery:
    """evaluate() 返回的不可变查询结果"""
    M: np.ndarray
    c: np.ndarray
    points: Dict[str, PointKinematics] = field(default_factory=dict)

    def stack(self, names):
        """
        把若干点的雅可比与 Jd_qd 按顺序堆叠成 Jc (6k, n) 和 Jd_qd (6k,)
        """
        n = self.M.shape[0]
        if len(names) == 0:
            return np.zeros((0, n)), np.zeros(0)
        Jc = np.vstack([self.points[name].J for name in names])
        Jd_qd = np.concatenate([self.points[name].Jd_qd for name in names])
        return Jc, Jd_qd


class RigidBodyModel:
    """
    刚体模型服务的接口定义 (Pinocchio / MuJoCo 后端都实现它)

    后端本身是有状态的: update() 推入当前状态，再通过 get_* 查询；
    evaluate() 把这两步封装成一个纯函数，返回 DynamicsQuery。
    """
    n_dof = 0

    def update(self, stp):
        raise NotImplementedError

    def get_dynamics(self):
        raise NotImplementedError

    def get_point(self, name):
        raise NotImplementedError

    def forward_kinematics(self, base_pose, q_j, name):
        raise NotImplementedError

    def has_point(self, name):
        raise NotImplementedError

    def evaluate(self, stp, points: Sequence[str] = ()):
        # 每次都必须重新推入状态，绝不信任上一次查询留下的模型状态
        self.update(stp)
        M, c = self.get_dynamics()
        kin = {name: self.get_point(name) for name in dict.fromkeys(points)}
        query = DynamicsQuery(M=M, c=c, points=kin)
        check_query(query, self.n_dof)
        return query


def check_query(query, n_dof):
    """核对模型服务返回量的维度"""
    n = n_dof + 6
    if query.M.shape != (n, n):
        raise DimensionMismatch(f"质量矩阵维度不匹配: {query.M.shape}, 期望 ({n}, {n})")
    if query.c.shape != (n,):
        raise DimensionMismatch(f"偏置力维度不匹配: {query.c.shape}, 期望 ({n},)")
    for name, kin in query.points.items():
        if kin.J.shape != (6, n):
            raise DimensionMismatch(f"[{name}] 雅可比维度不匹配: {kin.J.shape}, 期望 (6, {n})")
        if kin.Jd_qd.shape != (6,):
            raise DimensionMismatch(f"[{name}] Jd_qd 维度不匹配: {kin.Jd_qd.shape}, 期望 (6,)")
        if kin.p.shape != (3,) or kin.R.shape != (3, 3):
            raise DimensionMismatch(f"[{name}] 位姿维度不匹配: p={kin.p.shape}, R={kin.R.shape}")
