import numpy as np
import pytest

from wb_sim.dynamics.constraints import (
    ConstraintConfig,
    ContactGroup,
    ContactPoint,
    FrictionCone,
    Source,
    zero_contact_accelerations,
)
from wb_sim.dynamics.model_service import PointKinematics
from wb_sim.dynamics.payload import ContactModel, ExternalForce, Payload
from wb_sim.errors import ConstraintConfigError, DimensionMismatch


def _kin(p=(0.0, 0.0, 0.0), R=None, n=10):
    return PointKinematics(
        p=np.asarray(p, dtype=float),
        R=np.eye(3) if R is None else R,
        J=np.hstack([np.eye(6), np.zeros((6, n - 6))]),
        Jd_qd=np.zeros(6),
    )


# ==============================================================================
# ContactPoint
# ==============================================================================
def test_scalar_gain_broadcast():
    point = ContactPoint("l_sole", pos_gain=10.0, vel_gain=[1, 2, 3, 4, 5, 6])
    assert np.allclose(point.pos_gain, 10.0)
    assert point.pos_gain.shape == (6,)
    assert np.allclose(point.vel_gain, [1, 2, 3, 4, 5, 6])


def test_bad_gain_shape():
    with pytest.raises(DimensionMismatch):
        ContactPoint("l_sole", pos_gain=[1.0, 2.0])


def test_rigid_desired_acceleration():
    acc = np.arange(6, dtype=float)
    point = ContactPoint("l_sole", desired_acc=acc, pos_gain=100.0)
    a_d = point.desired_acceleration(0.0, _kin(p=(1.0, 0.0, 0.0)), np.ones(10), False)
    assert np.allclose(a_d, acc)


def test_velocity_feedback():
    point = ContactPoint("l_sole", desired_pose=(np.zeros(3), np.eye(3)), vel_gain=2.0)
    nu = np.zeros(10)
    nu[0] = 0.5
    a_d = point.desired_acceleration(0.0, _kin(), nu, True)
    assert np.allclose(a_d, [-1.0, 0.0, 0.0, 0.0, 0.0, 0.0])


def test_trajectory_reference():
    def ref(t):
        return (np.array([0.0, 0.0, t]), np.eye(3)), np.zeros(6), np.full(6, t)

    point = ContactPoint("l_hand", trajectory=ref, pos_gain=1.0)
    pose, vel, acc = point.reference(0.5)
    assert np.allclose(pose[0], [0.0, 0.0, 0.5])
    assert np.allclose(acc, 0.5)
    a_d = point.desired_acceleration(0.5, _kin(), np.zeros(10), True)
    assert np.allclose(a_d[:3], [0.5, 0.5, 1.0])


# ==============================================================================
# ConstraintConfig
# ==============================================================================
def test_active_names_follow_source_order():
    config = ConstraintConfig(groups={
        Source.HANDS: ContactGroup(points=[ContactPoint("l_hand")]),
        Source.FEET: ContactGroup(points=[ContactPoint("l_sole"),
                                          ContactPoint("r_sole", active=False)]),
    })
    assert config.active_names() == ["l_sole", "l_hand"]
    assert config.active_names((Source.HANDS,)) == ["l_hand"]
    assert config.num_constraints() == 12
    assert zero_contact_accelerations(config).shape == (12,)


def test_non_constraint_source_rejected():
    with pytest.raises(ConstraintConfigError):
        ConstraintConfig(groups={Source.PAYLOAD: ContactGroup()})


def test_validate_missing_group():
    config = ConstraintConfig(groups={Source.FEET: ContactGroup(points=[ContactPoint("l_sole")])})
    config.validate((Source.FEET, Source.EXTERNAL_FORCES))
    with pytest.raises(ConstraintConfigError):
        config.validate((Source.FEET, Source.HANDS))


def test_empty_rigid_group_is_valid():
    config = ConstraintConfig(groups={Source.HANDS: ContactGroup()})
    config.validate((Source.HANDS,))
    assert config.num_constraints() == 0


def test_friction_defaults():
    cone = FrictionCone()
    assert cone.mu == 0.5
    assert cone.foot_size is None


def test_friction_cones_per_source():
    feet_cone = FrictionCone(mu=0.8, foot_size=(0.2, 0.1))
    hand_cone = FrictionCone(mu=0.3)
    config = ConstraintConfig(groups={
        Source.FEET: ContactGroup(points=[ContactPoint("l_sole"), ContactPoint("r_sole")],
                                  friction=feet_cone),
        Source.HANDS: ContactGroup(points=[ContactPoint("l_hand")], friction=hand_cone),
    })
    cones = config.friction_cones()
    assert cones[Source.FEET] == (feet_cone, slice(0, 12))
    assert cones[Source.HANDS] == (hand_cone, slice(12, 18))

    # 没有摩擦锥的来源不出现，但后面来源的行号要跳过它
    config.groups[Source.FEET].friction = None
    cones = config.friction_cones()
    assert Source.FEET not in cones
    assert cones[Source.HANDS][1] == slice(12, 18)


# ==============================================================================
# 外力与负载
# ==============================================================================
@pytest.mark.parametrize("contact_model, size", [
    (ContactModel.FRICTIONLESS, 1),
    (ContactModel.POINT_CONTACT_WITH_FRICTION, 3),
    (ContactModel.SOFT_FINGER, 4),
])
def test_contact_model_basis(contact_model, size):
    assert contact_model.size == size
    B = contact_model.wrench_basis()
    assert B.shape == (6, size)
    assert np.linalg.matrix_rank(B) == size


def test_payload_hand_count():
    with pytest.raises(ConstraintConfigError):
        Payload(hands=["l_hand", "r_hand", "head"])
    with pytest.raises(ConstraintConfigError):
        Payload(hands=[])


def test_payload_force_length():
    payload = Payload(hands=["l_hand", "r_hand"], contact_model=ContactModel.SOFT_FINGER,
                      forces=np.zeros(6))
    points = {"l_hand": _kin(), "r_hand": _kin()}
    with pytest.raises(DimensionMismatch):
        payload.hand_wrenches(0.0, None, points)


def test_payload_rotates_contact_forces():
    # 手绕 z 轴转 90 度: 接触系 x -> 世界系 y
    Rz = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    payload = Payload(hands=["r_hand"], contact_model=ContactModel.POINT_CONTACT_WITH_FRICTION,
                      forces=np.array([1.0, 0.0, 0.0]), mass=1.0)
    (hand, w), = payload.hand_wrenches(0.0, None, {"r_hand": _kin(R=Rz)})
    assert hand == "r_hand"
    assert np.allclose(w, [0.0, 1.0, -9.81, 0.0, 0.0, 0.0])


def test_payload_frictionless_normal_force():
    payload = Payload(hands=["l_hand", "r_hand"], contact_model=ContactModel.FRICTIONLESS,
                      forces=lambda t, stp: np.array([2.0, 3.0]))
    out = payload.hand_wrenches(0.0, None, {"l_hand": _kin(), "r_hand": _kin()})
    assert np.allclose(out[0][1], [0.0, 0.0, 2.0, 0.0, 0.0, 0.0])
    assert np.allclose(out[1][1], [0.0, 0.0, 3.0, 0.0, 0.0, 0.0])


def test_payload_gravity_per_instance():
    points = {"l_hand": _kin(), "r_hand": _kin()}
    moon = Payload(hands=["l_hand", "r_hand"], mass=2.0, gravity=np.array([0.0, 0.0, -1.62]))
    earth = Payload(hands=["l_hand", "r_hand"], mass=2.0)
    earth.gravity[2] = -9.0
    default = Payload(hands=["l_hand", "r_hand"], mass=2.0)

    assert np.allclose(moon.hand_wrenches(0.0, None, points)[0][1][:3], [0.0, 0.0, -1.62])
    assert np.allclose(earth.hand_wrenches(0.0, None, points)[0][1][:3], [0.0, 0.0, -9.0])
    # 修改一个实例的重力不影响其他实例
    assert np.allclose(default.gravity, [0.0, 0.0, -9.81])
    assert default.gravity is not earth.gravity


def test_external_force_shape():
    force = ExternalForce("l_hand", np.zeros(3))
    with pytest.raises(DimensionMismatch):
        force.wrench_at(0.0, None)
