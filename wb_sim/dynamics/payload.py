from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence, Union

import numpy as np

from wb_sim.errors import ConstraintConfigError, DimensionMismatch

GRAVITY = np.array([0.0, 0.0, -9.81])


class ContactModel(Enum):
    """
    手与物体之间的接触模型，value 是每个接触点的力分量数
    接触坐标系的 z 轴沿接触面内法线方向
    """
    FRICTIONLESS = 1
    POINT_CONTACT_WITH_FRICTION = 3
    SOFT_FINGER = 4

    @property
    def size(self):
        return self.value

    def wrench_basis(self):
        """力基矩阵 B (6, s)：接触力分量 -> 接触系下的 6 维力旋量 [f; m]"""
        if self is ContactModel.FRICTIONLESS:
            B = np.zeros((6, 1))
            B[2, 0] = 1.0
        elif self is ContactModel.POINT_CONTACT_WITH_FRICTION:
            B = np.zeros((6, 3))
            B[:3, :3] = np.eye(3)
        else:
            # soft finger: 三维力 + 绕法线的扭矩
            B = np.zeros((6, 4))
            B[:3, :3] = np.eye(3)
            B[5, 3] = 1.0
        return B


def _resolve(value, t, stp):
    if callable(value):
        return np.asarray(value(t, stp), dtype=float)
    return np.asarray(value, dtype=float)


@dataclass
class ExternalForce:
    """作用在某个点上的世界系 6 维力旋量 [f; m]，可以是常量或 callable(t, state)"""
    point: str
    wrench: Union[np.ndarray, Callable]

    def wrench_at(self, t, stp):
        w = _resolve(self.wrench, t, stp)
        if w.shape != (6,):
            raise DimensionMismatch(f"[{self.point}] 外力旋量维度不匹配: {w.shape}, 期望 (6,)")
        return w


@dataclass
class Payload:
    """
    双手 (或单手) 抓持物体时作用在手上的负载力
    hands:         手的 frame 名 (1 或 2 个)
    contact_model: 接触模型，决定每只手的力分量数 s
    forces:        长度 h*s 的接触力 (接触系下)，或 callable(t, state)
    mass:          物体质量，重力平均分配到每只手上
    """
    hands: Sequence[str]
    contact_model: ContactModel = ContactModel.POINT_CONTACT_WITH_FRICTION
    forces: Union[np.ndarray, Callable] = None
    mass: float = 0.0
    gravity: np.ndarray = field(default_factory=lambda: GRAVITY.copy())

    def __post_init__(self):
        self.hands = list(self.hands)
        if len(self.hands) not in (1, 2):
            raise ConstraintConfigError(f"负载只能由 1 或 2 只手抓持, 实际 {len(self.hands)}")
        if self.forces is None:
            self.forces = np.zeros(len(self.hands) * self.contact_model.size)

    def hand_wrenches(self, t, stp, points):
        """
        每只手上的世界系力旋量
        Args:
            points: {hand_name: PointKinematics}，用手的姿态把接触系力转到世界系
        Returns:
            [(hand_name, wrench(6,)), ...]
        """
        s = self.contact_model.size
        h = len(self.hands)
        f_cp = _resolve(self.forces, t, stp)
        if f_cp.shape != (h * s,):
            raise DimensionMismatch(
                f"负载接触力维度不匹配: {f_cp.shape}, 期望 ({h * s},) = {h} 手 x {s}")

        B = self.contact_model.wrench_basis()
        weight = np.concatenate([self.mass * np.asarray(self.gravity, dtype=float) / h, np.zeros(3)])

        out = []
        for i, hand in enumerate(self.hands):
            R = points[hand].R
            w_c = B @ f_cp[i * s:(i + 1) * s]
            w = np.concatenate([R @ w_c[:3], R @ w_c[3:]]) + weight
            out.append((hand, w))
        return out
