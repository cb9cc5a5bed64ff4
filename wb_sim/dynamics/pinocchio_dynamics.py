import logging
import os

import numpy as np
import pinocchio as pin

from wb_sim.dynamics.model_service import PointKinematics, RigidBodyModel
from wb_sim.errors import ConstraintConfigError, DimensionMismatch
from wb_sim.utils.transforms import quat_to_rotm

logger = logging.getLogger(__name__)


class PinocchioDynamics(RigidBodyModel):
    def __init__(self, model):
        """
        Pinocchio 动力学后端 (浮动基座)
        Args:
            model: 根关节为 JointModelFreeFlyer 的 pin.Model

        Pinocchio 的自由关节速度是基座局部系下的 [v; w]，
        而状态向量使用 mixed 约定 (世界系 [dx_b; omega_b])，
        所以 M, c, J, Jd_qd 在这里统一换算到 mixed 约定后再返回。
        """
        if model.nq != model.nv + 1 or model.nv < 6:
            raise DimensionMismatch(
                f"需要 free-flyer 根关节 + 单自由度关节: nq={model.nq}, nv={model.nv}")

        self.model = model
        self.nv = model.nv
        self.nq = model.nq
        self.n_dof = model.nv - 6

        # [A] 主数据：当前积分状态的全部动力学量
        self.data = model.createData()
        # [B] 临时数据：正运动学查询专用，防止污染主数据
        self.temp_data = model.createData()

        self._T = np.eye(self.nv)
        self._Tdot_nu = np.zeros(self.nv)
        self._ready = False

        logger.info("✅ [Pinocchio] 模型就绪: n_dof=%d, nq=%d, nv=%d", self.n_dof, self.nq, self.nv)

    @classmethod
    def from_urdf(cls, urdf_path, active_joint_names=None):
        """
        从 URDF 加载浮动基座模型
        Args:
            urdf_path: URDF 文件路径
            active_joint_names (list): 保留的关节；其余关节在中立位被锁死。None 表示全部保留。
        """
        if not os.path.exists(urdf_path):
            raise FileNotFoundError(f"URDF not found: {urdf_path}")

        full_model = pin.buildModelFromUrdf(str(urdf_path), pin.JointModelFreeFlyer())

        if active_joint_names is None:
            return cls(full_model)

        # 找出不在白名单里的关节，锁死它们 (基座关节除外)
        joints_to_lock_ids = []
        for jid, jname in enumerate(full_model.names):
            if jid <= 1:
                continue
            if jname not in active_joint_names:
                joints_to_lock_ids.append(jid)

        if len(joints_to_lock_ids) == 0:
            return cls(full_model)

        q_ref = pin.neutral(full_model)
        model = pin.buildReducedModel(full_model, joints_to_lock_ids, q_ref)
        logger.info("模型裁剪完成: 原自由度 %d -> 现自由度 %d", full_model.nv, model.nv)
        return cls(model)

    def _configuration(self, base_pose, q_j):
        base_pose = np.asarray(base_pose, dtype=float)
        q_j = np.asarray(q_j, dtype=float)
        if q_j.shape != (self.n_dof,):
            raise DimensionMismatch(f"关节维度不匹配: 输入 q_j={q_j.shape}, 模型 n_dof={self.n_dof}")

        qt = base_pose[3:7] / np.linalg.norm(base_pose[3:7])
        return np.concatenate([base_pose[:3], qt, q_j])

    def has_point(self, name):
        return self.model.existFrame(name)

    def _frame_id(self, name):
        if not self.model.existFrame(name):
            raise ConstraintConfigError(f"[Pinocchio] 找不到 frame: {name}")
        return self.model.getFrameId(name)

    def update(self, stp):
        """
        同步当前积分状态 (会覆盖 self.data)
        """
        q = self._configuration(stp.base_pose, stp.q_j)
        R = quat_to_rotm(q[3:7])

        # mixed -> 局部速度: v_pin = T * nu
        v_l = R.T @ stp.dx_b
        w_l = R.T @ stp.omega_b
        v = np.concatenate([v_l, w_l, stp.dq_j])

        T = np.eye(self.nv)
        T[:3, :3] = R.T
        T[3:6, 3:6] = R.T
        self._T = T

        # dT/dt * nu 只有线速度块非零: -w_l x v_l
        Tdot_nu = np.zeros(self.nv)
        Tdot_nu[:3] = -np.cross(w_l, v_l)
        self._Tdot_nu = Tdot_nu

        # M, nle, 关节雅可比
        pin.computeAllTerms(self.model, self.data, q, v)
        # a = 0 的二阶正运动学，用于取 dJ * v
        pin.forwardKinematics(self.model, self.data, q, v, np.zeros(self.nv))
        pin.updateFramePlacements(self.model, self.data)
        self._ready = True

    def get_dynamics(self):
        """返回 mixed 约定下的质量矩阵 M 和偏置力 c (科氏力 + 重力)"""
        self._require_update()
        # crba 只填上三角
        M_p = np.triu(self.data.M) + np.triu(self.data.M, 1).T
        T = self._T
        M = T.T @ M_p @ T
        c = T.T @ (self.data.nle + M_p @ self._Tdot_nu)
        return 0.5 * (M + M.T), c

    def get_point(self, name):
        self._require_update()
        fid = self._frame_id(name)

        J_p = pin.getFrameJacobian(self.model, self.data, fid, pin.ReferenceFrame.LOCAL_WORLD_ALIGNED)
        acc = pin.getFrameClassicalAcceleration(
            self.model, self.data, fid, pin.ReferenceFrame.LOCAL_WORLD_ALIGNED).vector

        pose = self.data.oMf[fid]
        return PointKinematics(
            p=pose.translation.copy(),
            R=pose.rotation.copy(),
            J=J_p @ self._T,
            Jd_qd=acc + J_p @ self._Tdot_nu,
        )

    def forward_kinematics(self, base_pose, q_j, name):
        """
        任意基座位姿 + 关节角下的 frame 位姿

        使用 self.temp_data 计算，不影响 update() 里的真实状态。
        """
        fid = self._frame_id(name)
        q = self._configuration(base_pose, q_j)
        pin.framesForwardKinematics(self.model, self.temp_data, q)
        pose = self.temp_data.oMf[fid]
        return pose.translation.copy(), pose.rotation.copy()

    def _require_update(self):
        if not self._ready:
            raise RuntimeError("PinocchioDynamics: 查询前必须先调用 update()")
