"""wb_sim 的异常分类"""


class WBSimError(Exception):
    """所有 wb_sim 异常的基类"""


class DimensionMismatch(WBSimError, ValueError):
    """矩阵/向量维度与 n_dof 或激活约束数 k 不一致 (致命，直接中止本次求值)"""


class ConstraintConfigError(WBSimError, ValueError):
    """约束配置不一致：例如要求位姿修正但没有任何激活的约束点"""


class IntegrationError(WBSimError, RuntimeError):
    """外部 ODE 求解器内部失败 (例如刚性导致步长下溢)，原样携带求解器的信息"""

    def __init__(self, message, t_failed=None):
        super().__init__(message)
        self.t_failed = t_failed
