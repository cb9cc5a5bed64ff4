import logging

import numpy as np

from wb_sim.dynamics.constraints import ContactGroup, ContactPoint
from wb_sim.dynamics.state_codec import StateCodec
from wb_sim.errors import ConstraintConfigError, DimensionMismatch
from wb_sim.utils.transforms import invert_pose, rotm_to_quat

logger = logging.getLogger(__name__)

IDENTITY_POSE = np.array([0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 1.0])


def world_frame_from_fixed_link(model, q_j, link):
    """
    把世界坐标系固定在某个连杆上 (一般是着地的脚底)，返回对应的基座位姿 (7,)
    基座放在原点时算出 link 相对基座的位姿 b_T_l，世界系 = link 系，
    所以 w_T_b = inv(b_T_l)
    """
    p_bl, R_bl = model.forward_kinematics(IDENTITY_POSE, q_j, link)
    p_wb, R_wb = invert_pose(p_bl, R_bl)
    return np.concatenate([p_wb, rotm_to_quat(R_wb)])


def _fixed_link(feet_on_ground, foot_frames):
    if len(feet_on_ground) != 2 or len(foot_frames) != 2:
        raise ConstraintConfigError("feet_on_ground / foot_frames 必须是 [左, 右] 两项")
    if not any(feet_on_ground):
        raise ConstraintConfigError("至少需要一只脚着地才能确定世界坐标系")
    # 左脚着地就固定在左脚，否则固定在右脚
    return foot_frames[0] if feet_on_ground[0] else foot_frames[1]


def initial_state(model, q_j, feet_on_ground=(True, True), foot_frames=("l_sole", "r_sole")):
    """
    初始状态 chi0: 关节角为给定站姿，基座位姿由着地脚确定，速度全部为零
    """
    q_j = np.asarray(q_j, dtype=float)
    if q_j.shape != (model.n_dof,):
        raise DimensionMismatch(f"初始关节角维度不匹配: {q_j.shape}, 期望 ({model.n_dof},)")

    link = _fixed_link(feet_on_ground, foot_frames)
    base_pose = world_frame_from_fixed_link(model, q_j, link)
    logger.info("世界坐标系固定在 %s, 基座初始位置 %s", link, np.round(base_pose[:3], 4))

    codec = StateCodec(model.n_dof)
    return codec.from_components(base_pose[:3], base_pose[3:], q_j)


def _contact_group(model, chi0, frames, in_contact, pose_correction, pos_gain, vel_gain, friction):
    stp = StateCodec(model.n_dof).decode(chi0)
    points = []
    for name, active in zip(frames, in_contact):
        pose = model.forward_kinematics(stp.base_pose, stp.q_j, name)
        points.append(ContactPoint(
            name=name,
            active=bool(active),
            desired_pose=pose,
            pos_gain=pos_gain,
            vel_gain=vel_gain,
        ))
    return ContactGroup(points=points, pose_correction=pose_correction, friction=friction)


def configure_feet(model, chi0, feet_on_ground=(True, True), foot_frames=("l_sole", "r_sole"),
                   pose_correction=False, pos_gain=0.0, vel_gain=0.0, friction=None):
    """
    根据初始状态生成脚的约束组，期望位姿取初始正运动学结果
    """
    if len(feet_on_ground) != 2 or len(foot_frames) != 2:
        raise ConstraintConfigError("feet_on_ground / foot_frames 必须是 [左, 右] 两项")
    return _contact_group(model, chi0, foot_frames, feet_on_ground,
                          pose_correction, pos_gain, vel_gain, friction)


def configure_hands(model, chi0, hands_in_contact=(False, False), hand_frames=("l_hand", "r_hand"),
                    pose_correction=False, pos_gain=0.0, vel_gain=0.0, friction=None):
    """手扶住环境时的约束组 (例如撑在桌面上)，期望位姿同样取初始正运动学结果"""
    if len(hands_in_contact) != 2 or len(hand_frames) != 2:
        raise ConstraintConfigError("hands_in_contact / hand_frames 必须是 [左, 右] 两项")
    return _contact_group(model, chi0, hand_frames, hands_in_contact,
                          pose_correction, pos_gain, vel_gain, friction)
