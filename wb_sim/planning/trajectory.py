import numpy as np


# ==============================================================================
# 基类定义
# ==============================================================================
class TrajectoryGenerator:
    """
    关节参考轨迹基类
    get_state(t) -> (q_ref, dq_ref, ddq_ref)
    """

    def get_state(self, t):
        raise NotImplementedError("子类必须实现 get_state 方法")

    def __call__(self, t):
        return self.get_state(t)


# ==============================================================================
# 具体轨迹实现类
# ==============================================================================
class FixedTrajectory(TrajectoryGenerator):
    """固定姿态：站立平衡时保持初始关节角"""

    def __init__(self, q_target):
        self.q_target = np.array(q_target, dtype=float)

    def get_state(self, t):
        n = self.q_target.shape[0]
        return self.q_target.copy(), np.zeros(n), np.zeros(n)


class MinJerkTrajectory(TrajectoryGenerator):
    def __init__(self, q_start, q_end, duration, t_start=0.0):
        """
        五次多项式轨迹 (Minimum Jerk)
        保证位置、速度、加速度连续且起始/结束速度加速度为0
        """
        if duration <= 0:
            raise ValueError(f"duration 必须为正: {duration}")
        self.q_start = np.array(q_start, dtype=float)
        self.q_end = np.array(q_end, dtype=float)
        self.duration = float(duration)
        self.t_start = float(t_start)
        self.dq = self.q_end - self.q_start

    def get_state(self, t):
        zeros = np.zeros_like(self.q_start)
        t = t - self.t_start
        if t < 0:
            return self.q_start.copy(), zeros, zeros.copy()
        if t >= self.duration:
            return self.q_end.copy(), zeros, zeros.copy()

        # 归一化时间 s = t / T
        s = t / self.duration

        # 五次多项式 s(t) = 10s^3 - 15s^4 + 6s^5
        s_pos = 10 * s**3 - 15 * s**4 + 6 * s**5
        s_vel = (30 * s**2 - 60 * s**3 + 30 * s**4) / self.duration
        s_acc = (60 * s - 180 * s**2 + 120 * s**3) / (self.duration**2)

        return self.q_start + self.dq * s_pos, self.dq * s_vel, self.dq * s_acc


class SineTrajectory(TrajectoryGenerator):
    """
    (1 - cos) 正弦轨迹：每个关节独立的振幅，开局速度为 0
    """

    def __init__(self, q_init, amplitude, freq=1.0):
        self.q_init = np.array(q_init, dtype=float)
        self.amplitude = np.array(amplitude, dtype=float)
        self.freq = freq
        self.w = 2 * np.pi * self.freq

    def get_state(self, t):
        q_ref = self.q_init + self.amplitude * (1 - np.cos(self.w * t))
        dq_ref = self.amplitude * self.w * np.sin(self.w * t)
        ddq_ref = self.amplitude * (self.w**2) * np.cos(self.w * t)
        return q_ref, dq_ref, ddq_ref
