import logging
from dataclasses import dataclass

import numpy as np

from wb_sim.dynamics.constraints import CONSTRAINT_SOURCES, ConstraintConfig, Source
from wb_sim.dynamics.model_service import DynamicsQuery
from wb_sim.dynamics.solver import ConstrainedAccelerationSolver
from wb_sim.dynamics.state_codec import StateCodec
from wb_sim.errors import ConstraintConfigError, DimensionMismatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FDynResult:
    """一次前向动力学求值的全部中间量"""
    dchi: np.ndarray
    dnu: np.ndarray
    tau: np.ndarray
    f_c: np.ndarray
    a_d: np.ndarray
    state: object


class ForwardDynamics:
    def __init__(self, model, controller, constraints=None, sources=(Source.FEET,),
                 external_forces=(), payload=None, solver=None, mass_correction=0.0):
        """
        浮动基座机器人的约束前向动力学 (ODE 右端项)

        原来按 "脚位姿修正 / 手位姿修正 / 负载 / 外力" 组合拆出来的一堆
        forwardDynamics* 变体，在这里统一成一个按 Source 参数化的求值器。

        Args:
            model: RigidBodyModel 实例 (Pinocchio / MuJoCo 后端)
            controller: callable(t, M, c, state, nu, Jc, Jd_qd, constraints) -> tau
            constraints: ConstraintConfig
            sources: 激活的约束 / 外力来源 (Source 的集合)
            external_forces: [ExternalForce, ...]
            payload: Payload，作用在手上的负载力
            solver: ConstrainedAccelerationSolver，默认阻尼参数 1e-8 / 1e-6
            mass_correction: 加到质量矩阵对角上的修正量 (定步长积分时使用)
        """
        self.model = model
        self.controller = controller
        self.constraints = constraints if constraints is not None else ConstraintConfig()
        self.sources = frozenset(sources)
        self.external_forces = list(external_forces)
        self.payload = payload
        self.solver = solver or ConstrainedAccelerationSolver()
        self.mass_correction = float(mass_correction)

        self.n_dof = model.n_dof
        self.codec = StateCodec(self.n_dof)

        self._validate()
        # 约束点顺序固定: 先脚后手
        self._constraint_sources = tuple(s for s in CONSTRAINT_SOURCES if s in self.sources)

        logger.info(
            "前向动力学初始化: n_dof=%d, sources=%s, 约束点=%s",
            self.n_dof, sorted(s.value for s in self.sources),
            self.constraints.active_names(self._constraint_sources))

    def _validate(self):
        self.constraints.validate(self.sources)
        if Source.EXTERNAL_FORCES in self.sources and not self.external_forces:
            raise ConstraintConfigError("激活了 external_forces 但没有配置任何外力")
        if Source.PAYLOAD in self.sources and self.payload is None:
            raise ConstraintConfigError("激活了 payload 但没有配置负载")

    def _query_points(self):
        names = self.constraints.active_names(self._constraint_sources)
        if Source.EXTERNAL_FORCES in self.sources:
            names += [f.point for f in self.external_forces]
        if Source.PAYLOAD in self.sources:
            names += list(self.payload.hands)
        return names

    def _desired_accelerations(self, t, query, nu):
        a_d = []
        for source, point in self.constraints.active_points(self._constraint_sources):
            correction = self.constraints.group(source).pose_correction
            a_d.append(point.desired_acceleration(t, query.points[point.name], nu, correction))
        if not a_d:
            return np.zeros(0)
        return np.concatenate(a_d)

    def _external_terms(self, t, stp, query):
        """[(J (6, n), wrench (6,)), ...]"""
        terms = []
        if Source.EXTERNAL_FORCES in self.sources:
            for force in self.external_forces:
                terms.append((query.points[force.point].J, force.wrench_at(t, stp)))
        if Source.PAYLOAD in self.sources:
            for hand, w in self.payload.hand_wrenches(t, stp, query.points):
                terms.append((query.points[hand].J, w))
        return terms

    def evaluate(self, t, chi):
        # 接触状态可能在两次求值之间被切换，每次都重新核对
        self.constraints.validate(self._constraint_sources)

        # 1. 解码状态
        stp = self.codec.decode(chi)
        nu = stp.nu

        # 2. 查询模型 (每次都重新推入当前状态)
        query = self.model.evaluate(stp, self._query_points())
        M, c = query.M, query.c
        if self.mass_correction:
            M = M + self.mass_correction * np.eye(M.shape[0])
            query = DynamicsQuery(M=M, c=c, points=query.points)

        names = self.constraints.active_names(self._constraint_sources)
        Jc, Jd_qd = query.stack(names)

        # 3. 控制器 (异常原样向上抛)
        tau = np.asarray(
            self.controller(t, M, c, stp, nu, Jc, Jd_qd, self.constraints), dtype=float)
        if tau.shape != (self.n_dof,):
            raise DimensionMismatch(f"控制力矩维度不匹配: {tau.shape}, 期望 ({self.n_dof},)")

        # 4. 期望约束加速度
        a_d = self._desired_accelerations(t, query, nu)

        # 5. 外力 / 负载
        external = self._external_terms(t, stp, query)

        # 6. 约束动力学
        friction = self.constraints.friction_cones(self._constraint_sources) or None
        result = self.solver.solve(M, c, tau, Jc, Jd_qd, a_d, external, friction=friction)

        # 7. 编码 dchi/dt
        dchi = self.codec.derivative(stp, result.dnu)
        return FDynResult(dchi=dchi, dnu=result.dnu, tau=tau, f_c=result.f_c, a_d=a_d, state=stp)

    def __call__(self, t, chi):
        return self.evaluate(t, chi).dchi

    def constraint_velocities(self, chi):
        """激活约束点的速度 Jc * nu (漂移诊断)"""
        stp = self.codec.decode(chi)
        names = self.constraints.active_names(self._constraint_sources)
        query = self.model.evaluate(stp, names)
        Jc, _ = query.stack(names)
        return Jc @ stp.nu

    def trajectory_data(self, t_traj, chi_traj):
        """
        沿积分得到的轨迹重新求值，取出每个采样点的控制力矩和接触力
        Returns:
            dict: {"t", "tau" (N, n_dof), "f_c" (N, 6k), "dnu" (N, n_dof + 6)}
        """
        t_traj = np.asarray(t_traj, dtype=float)
        chi_traj = np.atleast_2d(np.asarray(chi_traj, dtype=float))
        if chi_traj.shape[0] != t_traj.shape[0]:
            raise DimensionMismatch(
                f"时间与状态轨迹长度不一致: {t_traj.shape[0]} vs {chi_traj.shape[0]}")

        tau, f_c, dnu = [], [], []
        for t, chi in zip(t_traj, chi_traj):
            res = self.evaluate(t, chi)
            tau.append(res.tau)
            f_c.append(res.f_c)
            dnu.append(res.dnu)
        return {
            "t": t_traj,
            "tau": np.array(tau),
            "f_c": np.array(f_c),
            "dnu": np.array(dnu),
        }
