from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from wb_sim.errors import ConstraintConfigError, DimensionMismatch
from wb_sim.utils.transforms import pose_error


class Source(Enum):
    """前向动力学中可以激活的约束 / 外力来源"""
    FEET = "feet"
    HANDS = "hands"
    EXTERNAL_FORCES = "external_forces"
    PAYLOAD = "payload"


CONSTRAINT_SOURCES = (Source.FEET, Source.HANDS)


def _gain(value):
    """标量或 6 维增益统一成 (6,) 向量"""
    g = np.asarray(value, dtype=float)
    if g.ndim == 0:
        return np.full(6, float(g))
    if g.shape != (6,):
        raise DimensionMismatch(f"增益维度不匹配: {g.shape}, 期望标量或 (6,)")
    return g.copy()


def _vec6(value):
    v = np.zeros(6) if value is None else np.asarray(value, dtype=float)
    if v.shape != (6,):
        raise DimensionMismatch(f"期望 (6,) 向量, 实际 {v.shape}")
    return v


@dataclass
class ContactPoint:
    """
    一个被约束的末端 (脚底 / 手掌)
    name:         模型中的 frame / site 名
    active:       是否处于接触状态
    desired_pose: 期望位姿 (p, R)，位姿修正时必需
    desired_vel:  期望 6 维速度 [线; 角]
    desired_acc:  期望 6 维加速度；刚性约束时就是约束加速度 (默认 0)
    pos_gain / vel_gain: 位姿修正的 PD 增益 (标量或 6 维)
    trajectory:   可选, t -> (pose, vel, acc)，优先于上面的固定期望值
    """
    name: str
    active: bool = True
    desired_pose: Optional[Tuple[np.ndarray, np.ndarray]] = None
    desired_vel: Optional[np.ndarray] = None
    desired_acc: Optional[np.ndarray] = None
    pos_gain: object = 0.0
    vel_gain: object = 0.0
    trajectory: Optional[Callable] = None

    def __post_init__(self):
        self.desired_vel = _vec6(self.desired_vel)
        self.desired_acc = _vec6(self.desired_acc)
        self.pos_gain = _gain(self.pos_gain)
        self.vel_gain = _gain(self.vel_gain)

    def reference(self, t):
        if self.trajectory is not None:
            pose, vel, acc = self.trajectory(t)
            return pose, _vec6(vel), _vec6(acc)
        return self.desired_pose, self.desired_vel, self.desired_acc

    def desired_acceleration(self, t, kin, nu, pose_correction):
        """
        该点的期望约束加速度 a_d
        - 刚性约束: a_d = desired_acc (一般为 0)
        - 位姿修正: a_d = acc_des - Kv * (J*nu - vel_des) - Kp * e_pose
        """
        pose, vel, acc = self.reference(t)
        if not pose_correction:
            return acc

        if pose is None:
            raise ConstraintConfigError(f"[{self.name}] 位姿修正需要期望位姿 desired_pose")
        p_des, R_des = pose
        err = pose_error(kin.p, kin.R, p_des, R_des)
        v_now = kin.J @ nu
        return acc - self.vel_gain * (v_now - vel) - self.pos_gain * err


@dataclass
class FrictionCone:
    """摩擦锥参数，只交给外部 QP 接触力求解器使用"""
    mu: float = 0.5
    torsional_mu: float = 0.0
    foot_size: Optional[Tuple[float, float]] = None
    min_normal_force: float = 0.0


@dataclass
class ContactGroup:
    points: List[ContactPoint] = field(default_factory=list)
    pose_correction: bool = False
    friction: Optional[FrictionCone] = None

    def active_points(self):
        return [p for p in self.points if p.active]

    def active_names(self):
        return [p.name for p in self.active_points()]


@dataclass
class ConstraintConfig:
    """
    按 Source 枚举索引的约束配置 (FEET / HANDS)
    """
    groups: Dict[Source, ContactGroup] = field(default_factory=dict)

    def __post_init__(self):
        for source in self.groups:
            if source not in CONSTRAINT_SOURCES:
                raise ConstraintConfigError(f"{source} 不是约束来源 (只允许 FEET / HANDS)")

    def group(self, source):
        return self.groups.get(source)

    def active_points(self, sources=CONSTRAINT_SOURCES):
        """按 sources 顺序返回 [(source, point), ...]"""
        out = []
        for source in sources:
            group = self.groups.get(source)
            if group is None:
                continue
            out.extend((source, p) for p in group.active_points())
        return out

    def active_names(self, sources=CONSTRAINT_SOURCES):
        return [p.name for _, p in self.active_points(sources)]

    def num_constraints(self, sources=CONSTRAINT_SOURCES):
        return 6 * len(self.active_points(sources))

    def friction_cones(self, sources=CONSTRAINT_SOURCES):
        """
        每个来源的摩擦锥和它在 f_c 中占的行: {source: (FrictionCone, slice)}
        没有配置摩擦锥的来源不出现，但仍然占行
        """
        out = {}
        start = 0
        for source in sources:
            group = self.groups.get(source)
            if group is None:
                continue
            stop = start + 6 * len(group.active_points())
            if group.friction is not None:
                out[source] = (group.friction, slice(start, stop))
            start = stop
        return out

    def validate(self, sources):
        for source in sources:
            if source not in CONSTRAINT_SOURCES:
                continue
            group = self.groups.get(source)
            if group is None:
                raise ConstraintConfigError(f"激活了 {source.value} 但没有对应的约束配置")
            if group.pose_correction and len(group.active_points()) == 0:
                raise ConstraintConfigError(
                    f"{source.value}: 要求位姿修正，但没有任何激活的约束点")


def zero_contact_accelerations(config, sources=CONSTRAINT_SOURCES):
    """刚性接触的零约束加速度 (6k,)"""
    return np.zeros(config.num_constraints(sources))
