import numpy as np
from scipy.spatial.transform import Rotation

# 四元数统一采用 scalar-last 顺序 (x, y, z, w)，与 scipy / Pinocchio 一致


def skew(v):
    """3 维向量 -> 叉乘矩阵 [v]x"""
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0],
    ])


def quat_to_rotm(qt):
    # from_quat 内部会先归一化，积分器带来的微小漂移不会影响结果
    return Rotation.from_quat(qt).as_matrix()


def rotm_to_quat(R):
    return Rotation.from_matrix(R).as_quat()


def quat_derivative(qt, omega_w):
    """
    四元数的运动学映射: dq/dt = 0.5 * (omega ⊗ q)
    Args:
        qt: 当前姿态四元数 (x, y, z, w)
        omega_w: 世界坐标系下的角速度 (3,)
    Returns:
        dqt: 四元数时间导数 (4,)
    """
    v = np.asarray(qt[:3], dtype=float)
    w = float(qt[3])
    omega_w = np.asarray(omega_w, dtype=float)

    dv = 0.5 * (w * omega_w + np.cross(omega_w, v))
    dw = -0.5 * np.dot(omega_w, v)
    return np.concatenate([dv, [dw]])


def pose_error(p, R, p_des, R_des):
    """
    6 维位姿误差 [位置误差; 姿态误差]，均在世界坐标系下表示。
    姿态误差取 log(R * R_des^T) 的旋转向量 (当前相对于期望)。
    """
    err_pos = np.asarray(p, dtype=float) - np.asarray(p_des, dtype=float)
    err_rot = Rotation.from_matrix(R @ R_des.T).as_rotvec()
    return np.concatenate([err_pos, err_rot])


def invert_pose(p, R):
    """齐次变换求逆: (p, R) -> (-R^T p, R^T)"""
    return -R.T @ p, R.T.copy()
