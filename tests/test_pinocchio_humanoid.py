import numpy as np
import pytest
from scipy.spatial.transform import Rotation

pin = pytest.importorskip("pinocchio")

from wb_sim.assets.box_humanoid import (  # noqa: E402
    FOOT_FRAMES, HAND_FRAMES, TORSO_JOINTS, build_box_humanoid, stance_posture)
from wb_sim.config import SimConfig  # noqa: E402
from wb_sim.controllers.controllers import JointPDController, ZeroTorqueController  # noqa: E402
from wb_sim.dynamics.constraints import ConstraintConfig, Source  # noqa: E402
from wb_sim.dynamics.forward_dynamics import ForwardDynamics  # noqa: E402
from wb_sim.dynamics.pinocchio_dynamics import PinocchioDynamics  # noqa: E402
from wb_sim.errors import ConstraintConfigError  # noqa: E402
from wb_sim.simulation.initial_state import configure_feet, initial_state  # noqa: E402
from wb_sim.simulation.stance import setup_stance  # noqa: E402


@pytest.fixture(scope="module")
def robot():
    return PinocchioDynamics(build_box_humanoid())


@pytest.fixture
def moving_state(robot):
    """站姿 + 随机速度，用于雅可比的数值校验"""
    rng = np.random.default_rng(7)
    chi = initial_state(robot, stance_posture())
    n = robot.n_dof
    chi[7:7 + n] += 0.1 * rng.standard_normal(n)
    chi[3:7] = Rotation.from_euler("xyz", [0.1, -0.2, 0.3]).as_quat()
    chi[7 + n:] = 0.3 * rng.standard_normal(n + 6)
    return chi


def _shift(fdyn, chi, eps):
    """沿当前速度把位置部分推进 eps (速度不变)"""
    stp = fdyn.codec.decode(chi)
    return chi + eps * fdyn.codec.derivative(stp, np.zeros(fdyn.n_dof + 6))


# ==============================================================================
# 模型服务
# ==============================================================================
def test_box_humanoid_dimensions(robot):
    assert robot.n_dof == 25
    for name in FOOT_FRAMES + HAND_FRAMES:
        assert robot.has_point(name)
    assert not robot.has_point("tail")


def test_frame_tree(robot):
    model = robot.model
    for name in TORSO_JOINTS:
        frame = model.frames[model.getFrameId(name + "_link")]
        assert frame.parentJoint == model.getJointId(name)

    # 末端 frame 沿 parentFrame 回溯: 经过骨盆到达 universe
    for name in FOOT_FRAMES + HAND_FRAMES:
        fid = model.getFrameId(name)
        chain = []
        while fid != 0:
            fid = model.frames[fid].parentFrame
            chain.append(model.frames[fid].name)
        assert chain[-2:] == ["pelvis", "universe"]
    assert model.frames[model.getFrameId("l_sole")].parentFrame == model.getFrameId("l_ankle_roll_link")


def test_unknown_frame(robot):
    chi = initial_state(robot, stance_posture())
    fdyn = ForwardDynamics(robot, ZeroTorqueController(), sources=())
    with pytest.raises(ConstraintConfigError):
        robot.evaluate(fdyn.codec.decode(chi), ["tail"])


def test_mass_matrix_symmetric_positive(robot, moving_state):
    fdyn = ForwardDynamics(robot, ZeroTorqueController(), sources=())
    query = robot.evaluate(fdyn.codec.decode(moving_state))
    M = query.M
    assert M.shape == (31, 31)
    assert np.allclose(M, M.T)
    assert np.all(np.linalg.eigvalsh(M) > 0.0)
    assert query.c.shape == (31,)


def test_free_fall(robot):
    chi = initial_state(robot, stance_posture())
    res = ForwardDynamics(robot, ZeroTorqueController(), sources=()).evaluate(0.0, chi)
    assert np.allclose(res.dnu[:3], [0.0, 0.0, -9.81], atol=1e-6)
    assert np.allclose(res.dnu[3:], 0.0, atol=1e-6)


@pytest.mark.parametrize("name", ["l_hand", "r_sole"])
def test_jacobian_matches_finite_difference(robot, moving_state, name):
    fdyn = ForwardDynamics(robot, ZeroTorqueController(), sources=())
    stp = fdyn.codec.decode(moving_state)
    kin = robot.evaluate(stp, [name]).points[name]

    eps = 1e-6
    chi_p = fdyn.codec.decode(_shift(fdyn, moving_state, eps))
    chi_m = fdyn.codec.decode(_shift(fdyn, moving_state, -eps))
    p_p, R_p = robot.forward_kinematics(chi_p.base_pose, chi_p.q_j, name)
    p_m, R_m = robot.forward_kinematics(chi_m.base_pose, chi_m.q_j, name)

    v = kin.J @ stp.nu
    assert np.allclose((p_p - p_m) / (2 * eps), v[:3], atol=1e-4)
    w = Rotation.from_matrix(R_p @ R_m.T).as_rotvec() / (2 * eps)
    assert np.allclose(w, v[3:], atol=1e-4)


@pytest.mark.parametrize("name", ["l_hand", "l_sole"])
def test_jd_qd_matches_finite_difference(robot, moving_state, name):
    fdyn = ForwardDynamics(robot, ZeroTorqueController(), sources=())
    stp = fdyn.codec.decode(moving_state)
    kin = robot.evaluate(stp, [name]).points[name]

    eps = 1e-6
    plus = fdyn.codec.decode(_shift(fdyn, moving_state, eps))
    minus = fdyn.codec.decode(_shift(fdyn, moving_state, -eps))
    v_p = robot.evaluate(plus, [name]).points[name].J @ stp.nu
    v_m = robot.evaluate(minus, [name]).points[name].J @ stp.nu
    assert np.allclose((v_p - v_m) / (2 * eps), kin.Jd_qd, atol=1e-3)


# ==============================================================================
# 站立场景
# ==============================================================================
def test_feet_start_on_ground(robot):
    chi0 = initial_state(robot, stance_posture())
    stp = ForwardDynamics(robot, ZeroTorqueController(), sources=()).codec.decode(chi0)

    p_l, R_l = robot.forward_kinematics(stp.base_pose, stp.q_j, "l_sole")
    p_r, _ = robot.forward_kinematics(stp.base_pose, stp.q_j, "r_sole")
    assert np.allclose(p_l, 0.0, atol=1e-9)
    assert np.allclose(R_l, np.eye(3), atol=1e-9)
    assert np.allclose(p_r, [0.0, -0.2, 0.0], atol=1e-9)
    assert stp.x_b[2] > 0.5


def test_two_foot_zero_torque(robot):
    chi0 = initial_state(robot, stance_posture())
    feet = configure_feet(robot, chi0)
    fdyn = ForwardDynamics(robot, ZeroTorqueController(),
                           constraints=ConstraintConfig(groups={Source.FEET: feet}))
    res = fdyn.evaluate(0.0, chi0)

    stp = fdyn.codec.decode(chi0)
    Jc, Jd_qd = robot.evaluate(stp, FOOT_FRAMES).stack(FOOT_FRAMES)
    assert np.allclose(Jc @ res.dnu + Jd_qd, 0.0, atol=1e-6)
    # 没有关节力矩，机器人在重力下塌下去
    assert np.linalg.norm(res.dnu[6:]) > 1e-3
    # 脚底支撑力向上
    assert res.f_c[2] > 0.0 and res.f_c[8] > 0.0

    chi1 = chi0 + 0.01 * res.dchi
    assert np.allclose(fdyn.constraint_velocities(chi1), 0.0, atol=1e-6)


def test_single_foot_pose_correction_converges(robot):
    q_j = stance_posture((True, False))
    chi = initial_state(robot, q_j, feet_on_ground=(True, False))
    feet = configure_feet(robot, chi, feet_on_ground=(True, False), pose_correction=True,
                          pos_gain=100.0, vel_gain=20.0)
    p_des, R_des = feet.points[0].desired_pose
    p_des = p_des + np.array([0.0, 0.0, 0.01])
    feet.points[0].desired_pose = (p_des, R_des)

    fdyn = ForwardDynamics(robot, ZeroTorqueController(),
                           constraints=ConstraintConfig(groups={Source.FEET: feet}))

    dt = 0.002
    errors = []
    for k in range(50):
        stp = fdyn.codec.decode(chi)
        p, _ = robot.forward_kinematics(stp.base_pose, stp.q_j, "l_sole")
        errors.append(np.linalg.norm(p - p_des))
        chi = chi + dt * fdyn(k * dt, chi)

    errors = np.array(errors)
    assert np.isclose(errors[0], 0.01)
    assert np.all(np.diff(errors) <= 1e-9)
    assert errors[-1] < 0.8 * errors[0]


def test_stance_with_posture_control(robot):
    q_j = stance_posture()
    cfg = SimConfig.from_dict({"integrator": {"t_end": 0.05, "sim_step": 0.01}})
    ctrl = JointPDController(kp=200.0, kd=20.0, q_ref=q_j)
    sim = setup_stance(robot, q_j, ctrl, cfg)
    result = sim.run()

    assert result.chi.shape == (6, 63)
    assert np.all(np.isfinite(result.chi))
    assert np.allclose(sim.fdyn.constraint_velocities(result.chi[-1]), 0.0, atol=1e-2)

    data = sim.fdyn.trajectory_data(result.t, result.chi)
    assert data["tau"].shape == (6, 25)
    assert data["f_c"].shape == (6, 12)
