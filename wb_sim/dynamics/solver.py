import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from wb_sim.errors import DimensionMismatch

logger = logging.getLogger(__name__)

DEFAULT_PINV_TOL = 1e-8
DEFAULT_PINV_DAMP = 1e-6


def damped_pinv(A, tol=DEFAULT_PINV_TOL, damping=DEFAULT_PINV_DAMP):
    """
    阻尼伪逆 (Tikhonov 正则化)
    奇异值 s < tol 的方向直接截断，其余按 s / (s^2 + damping^2) 求逆，
    约束雅可比接近奇异时也不会数值爆炸。
    """
    A = np.atleast_2d(np.asarray(A, dtype=float))
    if A.size == 0:
        return np.zeros((A.shape[1], A.shape[0]))

    U, s, Vt = np.linalg.svd(A, full_matrices=False)
    s_inv = np.zeros_like(s)
    keep = s > tol
    s_inv[keep] = s[keep] / (s[keep] ** 2 + damping ** 2)
    return (Vt.T * s_inv) @ U.T


class MassMatrixSolve:
    """M^{-1} 的作用算子，用 Cholesky 分解实现，不显式求逆"""

    def __init__(self, M, tol=DEFAULT_PINV_TOL, damping=DEFAULT_PINV_DAMP):
        self._cho = None
        self._pinv = None
        try:
            self._cho = cho_factor(M)
        except LinAlgError:
            # M 数值上不正定: 退化为阻尼伪逆，不中断积分
            logger.debug("质量矩阵 Cholesky 分解失败，改用阻尼伪逆")
            self._pinv = damped_pinv(M, tol, damping)

    def __call__(self, b):
        if self._cho is not None:
            return cho_solve(self._cho, b)
        return self._pinv @ b


@dataclass(frozen=True)
class ConstraintProblem:
    """
    交给接触力求解器的约束问题
    schur: Jc * M^-1 * Jc^T
    rhs:   a_d - Jd_qd - Jc * a_free
    """
    M: np.ndarray
    c: np.ndarray
    tau_gen: np.ndarray
    Jc: np.ndarray
    Jd_qd: np.ndarray
    a_d: np.ndarray
    a_free: np.ndarray
    schur: np.ndarray
    rhs: np.ndarray
    # {source: (FrictionCone, f_c 的行 slice)}
    friction: Optional[dict] = None


@dataclass(frozen=True)
class AccelerationResult:
    dnu: np.ndarray
    f_c: np.ndarray
    tau_gen: np.ndarray


class SchurComplementForceSolver:
    def __init__(self, tol=DEFAULT_PINV_TOL, damping=DEFAULT_PINV_DAMP):
        """默认接触力求解: 对 Schur 补做阻尼最小二乘"""
        self.tol = tol
        self.damping = damping

    def __call__(self, problem):
        if problem.schur.shape[0] > 0:
            rank = np.linalg.matrix_rank(problem.schur, tol=self.tol)
            if rank < problem.schur.shape[0]:
                logger.debug("约束 Schur 补秩亏: rank=%d < %d", rank, problem.schur.shape[0])
        return damped_pinv(problem.schur, self.tol, self.damping) @ problem.rhs


class ConstrainedAccelerationSolver:
    def __init__(self, tol=DEFAULT_PINV_TOL, damping=DEFAULT_PINV_DAMP, force_solver=None):
        """
        约束前向动力学求解器
            M * dnu + c = S^T tau + Jc^T f_c + sum(Jext^T f_ext)
            Jc * dnu + Jd_qd = a_d
        Args:
            tol, damping: 阻尼伪逆的截断阈值与阻尼
            force_solver: 接触力求解器 callable(ConstraintProblem) -> f_c，
                          默认是 Schur 补阻尼最小二乘，可替换为 QP 求解器
        """
        self.tol = tol
        self.damping = damping
        self.force_solver = force_solver or SchurComplementForceSolver(tol, damping)

    def solve(self, M, c, tau, Jc=None, Jd_qd=None, a_d=None,
              external: Sequence[Tuple[np.ndarray, np.ndarray]] = (), friction=None):
        """
        Args:
            M: 质量矩阵 (n, n)
            c: 偏置力 (n,)
            tau: 关节力矩 (n - 6,)
            Jc: 约束雅可比 (m, n)，None 或 0 行表示无约束
            Jd_qd: dJc * nu (m,)
            a_d: 期望约束加速度 (m,)，None 表示全零
            external: [(J_ext (r, n), f_ext (r,)), ...]，线性叠加，不参与约束方程
            friction: 透传给接触力求解器的摩擦锥, {source: (FrictionCone, f_c 的行 slice)}
        Returns:
            AccelerationResult(dnu, f_c, tau_gen)
        """
        M = np.asarray(M, dtype=float)
        c = np.asarray(c, dtype=float)
        tau = np.asarray(tau, dtype=float)

        n = M.shape[0]
        if M.ndim != 2 or M.shape != (n, n):
            raise DimensionMismatch(f"质量矩阵必须是方阵: {M.shape}")
        if c.shape != (n,):
            raise DimensionMismatch(f"偏置力维度不匹配: {c.shape}, 期望 ({n},)")
        if tau.shape != (n - 6,):
            raise DimensionMismatch(f"关节力矩维度不匹配: {tau.shape}, 期望 ({n - 6},)")

        # 1. 广义力: 浮动基座不受驱动
        tau_gen = np.concatenate([np.zeros(6), tau])
        for J_ext, f_ext in external:
            J_ext = np.atleast_2d(np.asarray(J_ext, dtype=float))
            f_ext = np.asarray(f_ext, dtype=float)
            if J_ext.shape[1] != n or f_ext.shape != (J_ext.shape[0],):
                raise DimensionMismatch(
                    f"外力雅可比/力维度不匹配: J={J_ext.shape}, f={f_ext.shape}, n={n}")
            tau_gen = tau_gen + J_ext.T @ f_ext

        # 2. 无约束加速度
        M_solve = MassMatrixSolve(M, self.tol, self.damping)
        a_free = M_solve(tau_gen - c)

        if Jc is None or np.size(Jc) == 0:
            return AccelerationResult(dnu=a_free, f_c=np.zeros(0), tau_gen=tau_gen)

        Jc = np.atleast_2d(np.asarray(Jc, dtype=float))
        m = Jc.shape[0]
        if Jc.shape[1] != n:
            raise DimensionMismatch(f"约束雅可比列数不匹配: {Jc.shape}, 期望 (*, {n})")
        Jd_qd = np.zeros(m) if Jd_qd is None else np.asarray(Jd_qd, dtype=float)
        a_d = np.zeros(m) if a_d is None else np.asarray(a_d, dtype=float)
        if Jd_qd.shape != (m,) or a_d.shape != (m,):
            raise DimensionMismatch(
                f"约束加速度维度不匹配: Jd_qd={Jd_qd.shape}, a_d={a_d.shape}, 期望 ({m},)")

        # 3. Schur 补消去接触力
        Minv_JcT = M_solve(Jc.T)
        schur = Jc @ Minv_JcT
        problem = ConstraintProblem(
            M=M, c=c, tau_gen=tau_gen, Jc=Jc, Jd_qd=Jd_qd, a_d=a_d,
            a_free=a_free, schur=schur, rhs=a_d - Jd_qd - Jc @ a_free,
            friction=friction,
        )
        f_c = np.asarray(self.force_solver(problem), dtype=float)
        if f_c.shape != (m,):
            raise DimensionMismatch(f"接触力维度不匹配: {f_c.shape}, 期望 ({m},)")

        # 4. 回代
        dnu = a_free + Minv_JcT @ f_c
        return AccelerationResult(dnu=dnu, f_c=f_c, tau_gen=tau_gen)
