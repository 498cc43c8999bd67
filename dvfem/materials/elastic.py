"""3D 弾性テンソルの構築と対称行列のパック表現.

Voigt 表記: σ = [σ11, σ22, σ33, σ23, σ13, σ12]
            ε = [ε11, ε22, ε33, γ23, γ13, γ12]

対称 6×6 行列は上三角を行優先で 21 成分にパックする:
  C[0..5]  = 行0 (列0..5)
  C[6..10] = 行1 (列1..5)
  C[11..14], C[15..17], C[18..19], C[20]
伝熱テンソルも同じ規約で 2D は 3 成分、3D は 6 成分にパックする。
"""

from __future__ import annotations

import numpy as np

_TRIU = {n: np.triu_indices(n) for n in (2, 3, 6)}

NUM_PACKED_6 = 21


def pack_symmetric(D: np.ndarray) -> np.ndarray:
    """対称行列 (n, n) を上三角行優先でパックする (n = 2, 3, 6)."""
    D = np.asarray(D, dtype=float)
    n = D.shape[0]
    if D.ndim != 2 or D.shape != (n, n) or n not in _TRIU:
        raise ValueError(f"D は (2,2)/(3,3)/(6,6) が必要。実際: {D.shape}")
    if not np.allclose(D, D.T, rtol=1e-12, atol=0.0):
        raise ValueError("D が対称でない")
    rows, cols = _TRIU[n]
    return D[rows, cols].copy()


def unpack_symmetric(c: np.ndarray, n: int) -> np.ndarray:
    """パック表現から対称行列 (n, n) を復元する."""
    rows, cols = _TRIU[n]
    c = np.asarray(c, dtype=float)
    if c.shape != (rows.shape[0],):
        raise ValueError(f"パック配列は長さ {rows.shape[0]} が必要。実際: {c.shape}")
    D = np.zeros((n, n), dtype=float)
    D[rows, cols] = c
    D[cols, rows] = c
    return D


def isotropic_stiffness_3d(E: float, nu: float) -> np.ndarray:
    """3D 等方弾性テンソル C (6×6).

    C11 = E(1-ν)/((1+ν)(1-2ν)), C12 = Eν/((1+ν)(1-2ν)), C44 = G = E/(2(1+ν))

    Args:
        E: ヤング率
        nu: ポアソン比

    Returns:
        C: (6, 6) 弾性テンソル
    """
    if E <= 0.0:
        raise ValueError(f"ヤング率 E は正値: {E}")
    if not (-1.0 < nu < 0.5):
        raise ValueError(f"ポアソン比 nu は (-1, 0.5): {nu}")
    D = E / ((1.0 + nu) * (1.0 - 2.0 * nu))
    G = 0.5 * E / (1.0 + nu)
    C = np.zeros((6, 6), dtype=float)
    C[:3, :3] = nu * D
    C[0, 0] = C[1, 1] = C[2, 2] = (1.0 - nu) * D
    C[3, 3] = C[4, 4] = C[5, 5] = G
    return C


def orthotropic_stiffness_3d(
    E1: float,
    E2: float,
    E3: float,
    nu12: float,
    nu13: float,
    nu23: float,
    G23: float,
    G13: float,
    G12: float,
) -> np.ndarray:
    """3D 直交異方性弾性テンソル C (6×6).

    法線 3×3 ブロックはコンプライアンスの逆行列。せん断成分は
    対角のみで、せん断成分間・法線成分との連成はない。
    """
    for name, val in (("E1", E1), ("E2", E2), ("E3", E3), ("G23", G23), ("G13", G13), ("G12", G12)):
        if val <= 0.0:
            raise ValueError(f"{name} は正値: {val}")

    S = np.array(
        [
            [1.0 / E1, -nu12 / E1, -nu13 / E1],
            [-nu12 / E1, 1.0 / E2, -nu23 / E2],
            [-nu13 / E1, -nu23 / E2, 1.0 / E3],
        ],
        dtype=float,
    )
    if np.linalg.eigvalsh(S).min() <= 0.0:
        raise ValueError("直交異方性コンプライアンスが正定値でない（ポアソン比を確認）")

    C = np.zeros((6, 6), dtype=float)
    C[:3, :3] = np.linalg.inv(S)
    C[:3, :3] = 0.5 * (C[:3, :3] + C[:3, :3].T)
    C[3, 3] = G23
    C[4, 4] = G13
    C[5, 5] = G12
    return C


def packed_matvec_6(C: np.ndarray, e: np.ndarray) -> np.ndarray:
    """パック 21 成分の対称行列とベクトルの積 s = C e."""
    return unpack_symmetric(C, 6) @ e
