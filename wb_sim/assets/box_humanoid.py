import numpy as np
import pinocchio as pin

# 25 自由度盒子人形机器人 (关节顺序: 躯干 3, 左臂 5, 右臂 5, 左腿 6, 右腿 6)
TORSO_JOINTS = ["torso_pitch", "torso_roll", "torso_yaw"]
ARM_JOINTS = ["shoulder_pitch", "shoulder_roll", "shoulder_yaw", "elbow", "wrist_prosup"]
LEG_JOINTS = ["hip_pitch", "hip_roll", "hip_yaw", "knee", "ankle_pitch", "ankle_roll"]

FOOT_FRAMES = ("l_sole", "r_sole")
HAND_FRAMES = ("l_hand", "r_hand")

# universe frame，模型里的第 0 个 frame
UNIVERSE_FRAME = 0

_AXES = {"x": pin.JointModelRX, "y": pin.JointModelRY, "z": pin.JointModelRZ}


def _se3(p):
    return pin.SE3(np.eye(3), np.asarray(p, dtype=float))


def _add_link(model, parent, name, axis, joint_offset, mass, size, com):
    """parent = (父关节 id, 父 body frame id)，返回本连杆的 (关节 id, body frame id)"""
    parent_joint, parent_frame = parent
    jid = model.addJoint(parent_joint, _AXES[axis](), _se3(joint_offset), name)
    model.appendBodyToJoint(jid, pin.Inertia.FromBox(mass, *size), _se3(com))
    fid = model.addBodyFrame(name + "_link", jid, pin.SE3.Identity(), parent_frame)
    return jid, fid


def _add_arm(model, parent, side):
    y = 0.2 if side == "l" else -0.2
    j = _add_link(model, parent, f"{side}_shoulder_pitch", "y", [0.0, y, 0.35],
                  0.1, (0.04, 0.04, 0.04), [0.0, 0.0, 0.0])
    j = _add_link(model, j, f"{side}_shoulder_roll", "x", [0.0, 0.0, 0.0],
                  0.1, (0.04, 0.04, 0.04), [0.0, 0.0, 0.0])
    j = _add_link(model, j, f"{side}_shoulder_yaw", "z", [0.0, 0.0, 0.0],
                  1.5, (0.06, 0.06, 0.24), [0.0, 0.0, -0.12])
    j = _add_link(model, j, f"{side}_elbow", "y", [0.0, 0.0, -0.25],
                  1.0, (0.05, 0.05, 0.2), [0.0, 0.0, -0.1])
    j = _add_link(model, j, f"{side}_wrist_prosup", "z", [0.0, 0.0, -0.2],
                  0.3, (0.08, 0.03, 0.1), [0.0, 0.0, -0.05])
    model.addBodyFrame(f"{side}_hand", j[0], _se3([0.0, 0.0, -0.1]), j[1])


def _add_leg(model, parent, side):
    y = 0.1 if side == "l" else -0.1
    j = _add_link(model, parent, f"{side}_hip_pitch", "y", [0.0, y, -0.05],
                  0.1, (0.05, 0.05, 0.05), [0.0, 0.0, 0.0])
    j = _add_link(model, j, f"{side}_hip_roll", "x", [0.0, 0.0, 0.0],
                  0.1, (0.05, 0.05, 0.05), [0.0, 0.0, 0.0])
    j = _add_link(model, j, f"{side}_hip_yaw", "z", [0.0, 0.0, 0.0],
                  3.0, (0.1, 0.1, 0.4), [0.0, 0.0, -0.2])
    j = _add_link(model, j, f"{side}_knee", "y", [0.0, 0.0, -0.4],
                  2.0, (0.08, 0.08, 0.4), [0.0, 0.0, -0.2])
    j = _add_link(model, j, f"{side}_ankle_pitch", "y", [0.0, 0.0, -0.4],
                  0.1, (0.04, 0.04, 0.04), [0.0, 0.0, 0.0])
    j = _add_link(model, j, f"{side}_ankle_roll", "x", [0.0, 0.0, 0.0],
                  0.8, (0.2, 0.1, 0.04), [0.03, 0.0, -0.05])
    model.addBodyFrame(f"{side}_sole", j[0], _se3([0.0, 0.0, -0.07]), j[1])


def build_box_humanoid():
    """
    用 Pinocchio 程序化搭建的浮动基座人形模型 (free-flyer + 25 个转动关节)
    脚底 frame: l_sole / r_sole，手 frame: l_hand / r_hand
    """
    model = pin.Model()
    model.name = "box_humanoid"

    root = model.addJoint(0, pin.JointModelFreeFlyer(), pin.SE3.Identity(), "root_joint")
    model.appendBodyToJoint(root, pin.Inertia.FromBox(5.0, 0.2, 0.25, 0.1), pin.SE3.Identity())
    pelvis = model.addBodyFrame("pelvis", root, pin.SE3.Identity(), UNIVERSE_FRAME)
    root = (root, pelvis)

    j = _add_link(model, root, "torso_pitch", "y", [0.0, 0.0, 0.1],
                  0.2, (0.05, 0.05, 0.05), [0.0, 0.0, 0.0])
    j = _add_link(model, j, "torso_roll", "x", [0.0, 0.0, 0.0],
                  0.2, (0.05, 0.05, 0.05), [0.0, 0.0, 0.0])
    chest = _add_link(model, j, "torso_yaw", "z", [0.0, 0.0, 0.0],
                      8.0, (0.2, 0.3, 0.35), [0.0, 0.0, 0.2])

    _add_arm(model, chest, "l")
    _add_arm(model, chest, "r")
    _add_leg(model, root, "l")
    _add_leg(model, root, "r")
    return model


def stance_posture(feet_on_ground=(True, True)):
    """
    站立初始关节角 (rad)。髋、膝、踝的俯仰角之和为 0，脚底与骨盆平行。
    单脚支撑时抬起另一条腿。
    """
    torso = [0.0, 0.0, 0.0]
    arm = [0.0, 0.3, 0.0, -0.5, 0.0]
    r_arm = [0.0, -0.3, 0.0, -0.5, 0.0]
    support = [-0.35, 0.0, 0.0, 0.7, -0.35, 0.0]
    lifted = [-0.7, 0.0, 0.0, 1.2, -0.5, 0.0]

    left = support if feet_on_ground[0] else lifted
    right = support if feet_on_ground[1] else lifted
    return np.array(torso + arm + r_arm + left + right, dtype=float)
