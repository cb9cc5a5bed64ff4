import logging
import time
from dataclasses import dataclass

import numpy as np
from scipy.integrate import solve_ivp

from wb_sim.errors import IntegrationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationResult:
    t: np.ndarray      # (N,)
    chi: np.ndarray    # (N, 2n + 13)
    nfev: int
    wall_time: float


def time_grid(t_start, t_end, sim_step):
    """
    t_start 到 t_end 的等步长时间网格，最后一个点总是 t_end
    区间不是步长的整数倍时，最后一步缩短
    """
    if sim_step <= 0 or t_end <= t_start:
        raise ValueError(f"非法的时间区间: [{t_start}, {t_end}], step={sim_step}")
    span = t_end - t_start
    eps = 1e-9 * max(1.0, abs(t_end))
    n = int(np.floor(span / sim_step + 1e-9))
    t = t_start + sim_step * np.arange(n + 1)
    if t_end - t[-1] > eps:
        return np.append(t, t_end)
    t[-1] = t_end
    return t


def euler_forward(rhs, chi0, t_start, t_end, sim_step):
    """定步长显式欧拉积分"""
    t = time_grid(t_start, t_end, sim_step)
    chi = np.zeros((t.shape[0], np.size(chi0)))
    chi[0] = chi0
    for i in range(1, t.shape[0]):
        dt = t[i] - t[i - 1]
        chi[i] = chi[i - 1] + dt * rhs(t[i - 1], chi[i - 1])
    return t, chi


class Integrator:
    def __init__(self, t_start=0.0, t_end=2.0, sim_step=0.01, method="BDF",
                 rtol=1e-3, atol=1e-4, fixed_step=False):
        """
        前向动力学积分驱动
        Args:
            method: solve_ivp 的方法名，刚性问题默认 BDF
            rtol / atol: 误差容限
            fixed_step: True 时改用定步长显式欧拉
        """
        self.t_start = t_start
        self.t_end = t_end
        self.sim_step = sim_step
        self.method = method
        self.rtol = rtol
        self.atol = atol
        self.fixed_step = fixed_step

    @classmethod
    def from_config(cls, cfg):
        return cls(t_start=cfg.t_start, t_end=cfg.t_end, sim_step=cfg.sim_step,
                   method=cfg.method, rtol=cfg.rtol, atol=cfg.atol, fixed_step=cfg.fixed_step)

    def run(self, rhs, chi0):
        chi0 = np.asarray(chi0, dtype=float)
        nfev = 0

        def counted(t, chi):
            nonlocal nfev
            nfev += 1
            return rhs(t, chi)

        logger.info("🚀 开始数值积分: [%.3f, %.3f] s, step=%.4f, %s",
                    self.t_start, self.t_end, self.sim_step,
                    "euler" if self.fixed_step else self.method)
        start = time.time()

        if self.fixed_step:
            t, chi = euler_forward(counted, chi0, self.t_start, self.t_end, self.sim_step)
        else:
            t_eval = time_grid(self.t_start, self.t_end, self.sim_step)
            sol = solve_ivp(counted, (t_eval[0], t_eval[-1]), chi0, method=self.method,
                            t_eval=t_eval, rtol=self.rtol, atol=self.atol)
            if not sol.success:
                t_failed = sol.t[-1] if sol.t.size else self.t_start
                raise IntegrationError(sol.message, t_failed=t_failed)
            t, chi = sol.t, sol.y.T

        wall = time.time() - start
        logger.info("✅ 数值积分完成: %d 个采样点, %d 次右端项求值, 耗时 %.2f s",
                    t.shape[0], nfev, wall)
        return SimulationResult(t=t, chi=chi, nfev=nfev, wall_time=wall)
