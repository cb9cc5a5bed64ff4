import logging

import mujoco
import numpy as np

from wb_sim.dynamics.model_service import PointKinematics, RigidBodyModel
from wb_sim.errors import ConstraintConfigError, DimensionMismatch
from wb_sim.utils.transforms import quat_to_rotm

logger = logging.getLogger(__name__)


def _full_inertia(model, data, dst):
    """稠密质量矩阵写入 dst。新版: mj_fullM(m, d, dst)，旧版: mj_fullM(m, dst, d.qM)"""
    try:
        mujoco.mj_fullM(model, data, dst)
    except TypeError:
        mujoco.mj_fullM(model, dst, data.qM)


class MujocoDynamics(RigidBodyModel):
    def __init__(self, model, data=None):
        """
        MuJoCo 动力学后端 (第一个关节必须是 freejoint)

        MuJoCo 的 freejoint: qpos = [p, (w, x, y, z), ...]，
        qvel = [世界系线速度, 机体系角速度, ...]，
        这里换算到状态向量的 mixed 约定 (世界系线速度 + 世界系角速度)。
        约束点用 site 名或 body 名指定。
        """
        if model.njnt == 0 or model.jnt_type[0] != mujoco.mjtJoint.mjJNT_FREE:
            raise DimensionMismatch("MuJoCo 模型的第一个关节必须是 freejoint")
        if model.nq != model.nv + 1:
            raise DimensionMismatch(
                f"除 freejoint 外只支持单自由度关节: nq={model.nq}, nv={model.nv}")

        self.model = model
        self.data = mujoco.MjData(model) if data is None else data
        # 正运动学查询专用的临时数据
        self.temp_data = mujoco.MjData(model)

        self.nv = model.nv
        self.n_dof = model.nv - 6
        self.M = np.zeros((self.nv, self.nv))
        self._T = np.eye(self.nv)
        self._ready = False

        logger.info("✅ [MuJoCo] 模型就绪: n_dof=%d, nbody=%d", self.n_dof, model.nbody)

    @classmethod
    def from_xml_path(cls, xml_path):
        return cls(mujoco.MjModel.from_xml_path(xml_path))

    @classmethod
    def from_xml_string(cls, xml):
        return cls(mujoco.MjModel.from_xml_string(xml))

    def _lookup(self, name):
        sid = mujoco.mj_name2id(self.model, mujoco.mjtObj.mjOBJ_SITE, name)
        if sid >= 0:
            return "site", sid
        bid = mujoco.mj_name2id(self.model, mujoco.mjtObj.mjOBJ_BODY, name)
        if bid >= 0:
            return "body", bid
        raise ConstraintConfigError(f"[MuJoCo] 找不到 site/body: {name}")

    def has_point(self, name):
        return (mujoco.mj_name2id(self.model, mujoco.mjtObj.mjOBJ_SITE, name) >= 0
                or mujoco.mj_name2id(self.model, mujoco.mjtObj.mjOBJ_BODY, name) >= 0)

    def _write_qpos(self, data, base_pose, q_j):
        base_pose = np.asarray(base_pose, dtype=float)
        q_j = np.asarray(q_j, dtype=float)
        if q_j.shape != (self.n_dof,):
            raise DimensionMismatch(f"关节维度不匹配: 输入 q_j={q_j.shape}, 模型 n_dof={self.n_dof}")

        qt = base_pose[3:7] / np.linalg.norm(base_pose[3:7])
        data.qpos[:3] = base_pose[:3]
        # (x, y, z, w) -> (w, x, y, z)
        data.qpos[3:7] = [qt[3], qt[0], qt[1], qt[2]]
        data.qpos[7:] = q_j
        return quat_to_rotm(qt)

    def update(self, stp):
        R = self._write_qpos(self.data, stp.base_pose, stp.q_j)

        self.data.qvel[:3] = stp.dx_b
        self.data.qvel[3:6] = R.T @ stp.omega_b
        self.data.qvel[6:] = stp.dq_j

        T = np.eye(self.nv)
        T[3:6, 3:6] = R.T
        self._T = T

        mujoco.mj_forward(self.model, self.data)
        self._ready = True

    def get_dynamics(self):
        """返回 mixed 约定下的 M, c (c = C*dq + g)"""
        self._require_update()
        _full_inertia(self.model, self.data, self.M)
        T = self._T
        # dT/dt * nu 在该约定下恒为零，c 只需左乘 T^T
        M = T.T @ self.M @ T
        c = T.T @ self.data.qfrc_bias
        return 0.5 * (M + M.T), c

    def get_point(self, name):
        self._require_update()
        kind, oid = self._lookup(name)

        if kind == "site":
            p = self.data.site_xpos[oid].copy()
            R = self.data.site_xmat[oid].reshape(3, 3).copy()
            body = self.model.site_bodyid[oid]
        else:
            p = self.data.xpos[oid].copy()
            R = self.data.xmat[oid].reshape(3, 3).copy()
            body = oid

        jacp = np.zeros((3, self.nv))
        jacr = np.zeros((3, self.nv))
        mujoco.mj_jac(self.model, self.data, jacp, jacr, p, body)

        jacp_dot = np.zeros((3, self.nv))
        jacr_dot = np.zeros((3, self.nv))
        mujoco.mj_jacDot(self.model, self.data, jacp_dot, jacr_dot, p, body)

        J = np.vstack([jacp, jacr])
        Jd_qd = np.vstack([jacp_dot, jacr_dot]) @ self.data.qvel
        return PointKinematics(p=p, R=R, J=J @ self._T, Jd_qd=Jd_qd)

    def forward_kinematics(self, base_pose, q_j, name):
        kind, oid = self._lookup(name)
        self._write_qpos(self.temp_data, base_pose, q_j)
        mujoco.mj_kinematics(self.model, self.temp_data)

        if kind == "site":
            return (self.temp_data.site_xpos[oid].copy(),
                    self.temp_data.site_xmat[oid].reshape(3, 3).copy())
        return self.temp_data.xpos[oid].copy(), self.temp_data.xmat[oid].reshape(3, 3).copy()

    def _require_update(self):
        if not self._ready:
            raise RuntimeError("MujocoDynamics: 查询前必须先调用 update()")
