"""3D 線形熱弾性要素モデル（LinearThermoelasticity3D）のテスト."""

from __future__ import annotations

import numpy as np
import pytest

from dvfem.core.jacobian import jacobian_index, to_dense
from dvfem.elements.elasticity import LinearElasticity3D
from dvfem.elements.thermoelasticity import LinearThermoelasticity3D
from dvfem.fd_check import check_adjoint_product, check_weak_jacobian
from dvfem.materials.properties import MaterialProperties
from dvfem.materials.solid import SolidConstitutive
from dvfem.output.request import ALL_OUTPUT, ElementType, OutputRequest

E_AL = 70e9
NU_AL = 0.3
RHO_AL = 2700.0
ALPHA = 23e-6
KAPPA = 237.0
CP = 900.0
PT = np.zeros(3)
X0 = np.array([0.2, 0.4, 0.6])


def _props() -> MaterialProperties:
    return MaterialProperties.isotropic(
        RHO_AL, E_AL, NU_AL, ys=270e6, alpha=ALPHA, kappa=KAPPA, specific_heat=CP
    )


def _model(t: float = 0.9) -> LinearThermoelasticity3D:
    return LinearThermoelasticity3D(SolidConstitutive(_props(), t=t, t_num=0))


def _state(seed: int = 0) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    Ut = np.zeros((4, 3))
    Ut[:3, 0] = 1e-3 * rng.standard_normal(3)
    Ut[3, 0] = 5.0 * rng.standard_normal()
    Ut[:, 1] = rng.standard_normal(4)
    Ut[:, 2] = 10.0 * rng.standard_normal(4)
    Ux = np.zeros((4, 4))
    Ux[:, 0] = Ut[:, 0]
    Ux[:3, 1:] = 1e-3 * rng.standard_normal((3, 3))
    Ux[3, 1:] = 10.0 * rng.standard_normal(3)
    return Ut.reshape(-1), Ux.reshape(-1)


class TestThermoelasticityIntegrand:
    """弱形式係数."""

    def test_sizes(self):
        model = _model()
        assert model.get_vars_per_node() == 4
        assert model.jacobian_size == 24

    def test_free_thermal_expansion(self):
        """ε = α T I（自由膨張）では応力ゼロ."""
        model = _model()
        dT = 50.0
        Ux = np.zeros((4, 4))
        Ux[3, 0] = dT
        for k in range(3):
            Ux[k, 1 + k] = ALPHA * dT
        _, DUx = model.eval_weak_integrand(0, 0.0, 0, PT, X0, np.zeros(12), Ux)
        np.testing.assert_allclose(DUx.reshape(4, 4)[:3], 0.0, atol=1e-6)

    def test_constrained_thermal_stress(self):
        """変位拘束下の加熱で σ11 = -t E α ΔT / (1 - 2ν)."""
        t, dT = 0.9, 10.0
        model = _model(t)
        Ux = np.zeros((4, 4))
        Ux[3, 0] = dT
        _, DUx = model.eval_weak_integrand(0, 0.0, 0, PT, X0, np.zeros(12), Ux)
        expected = -t * E_AL * ALPHA * dT / (1 - 2 * NU_AL)
        assert DUx.reshape(4, 4)[0, 1] == pytest.approx(expected, rel=1e-10)

    def test_matches_elasticity_at_zero_temperature(self):
        props = _props()
        thermo = LinearThermoelasticity3D(SolidConstitutive(props, t=0.9))
        elastic = LinearElasticity3D(SolidConstitutive(props, t=0.9))
        Ut, Ux = _state(1)
        Ut = Ut.reshape(4, 3)
        Ux = Ux.reshape(4, 4)
        Ux[3, 0] = 0.0
        DUt, DUx = thermo.eval_weak_integrand(0, 0.0, 0, PT, X0, Ut, Ux)
        DUt_e, DUx_e = elastic.eval_weak_integrand(0, 0.0, 0, PT, X0, Ut[:3], Ux[:3])
        np.testing.assert_allclose(DUt.reshape(4, 3)[:3], DUt_e.reshape(3, 3))
        np.testing.assert_allclose(DUx.reshape(4, 4)[:3], DUx_e.reshape(3, 4), rtol=1e-12)

    def test_heat_terms(self):
        t = 0.9
        model = _model(t)
        Ut, Ux = _state(2)
        DUt, DUx = model.eval_weak_integrand(0, 0.0, 0, PT, X0, Ut, Ux)
        DUt = DUt.reshape(4, 3)
        DUx = DUx.reshape(4, 4)
        assert DUt[3, 1] == pytest.approx(t * RHO_AL * t * CP * Ut.reshape(4, 3)[3, 1])
        assert DUx[3, 0] == 0.0
        np.testing.assert_allclose(DUx[3, 1:], t * KAPPA * Ux.reshape(4, 4)[3, 1:])

    def test_separability(self):
        model = _model()
        Ut1, Ux1 = _state(3)
        Ut2, Ux2 = _state(4)
        a = model.eval_weak_integrand(0, 0.0, 0, PT, X0, Ut1, Ux1)
        b = model.eval_weak_integrand(0, 0.0, 0, PT, X0, Ut1, Ux2)
        c = model.eval_weak_integrand(0, 0.0, 0, PT, X0, Ut2, Ux1)
        np.testing.assert_array_equal(a.DUt, b.DUt)
        np.testing.assert_array_equal(a.DUx, c.DUx)


class TestThermoelasticityJacobian:
    """弱形式ヤコビアン（一方向連成で非対称）."""

    @pytest.mark.parametrize("seed", [0, 1])
    def test_fd(self, seed):
        report = check_weak_jacobian(_model(), 0, 0.0, 0, PT, X0, *_state(seed))
        assert report.passed, report.max_abs_error

    def test_one_way_coupling(self):
        """力学行は温度値列に依存するが、温度行は変位列に依存しない."""
        model = _model()
        J = to_dense(model.eval_weak_jacobian(0, 0.0, 0, PT, X0, *_state()), 24)
        T_val = jacobian_index(3, 0, 3)
        u_x = jacobian_index(0, 3, 3)
        assert J[u_x, T_val] != 0.0
        T_rows = [jacobian_index(3, s, 3) for s in range(6)]
        disp_cols = [jacobian_index(k, s, 3) for k in range(3) for s in range(6)]
        np.testing.assert_allclose(J[np.ix_(T_rows, disp_cols)], 0.0)

    def test_capacity_entries(self):
        t = 0.9
        J = to_dense(_model(t).eval_weak_jacobian(0, 0.0, 0, PT, X0, *_state()), 24)
        i = jacobian_index(3, 1, 3)
        assert J[i, i] == pytest.approx(t * RHO_AL * t * CP)
        for k in range(3):
            i = jacobian_index(k, 2, 3)
            assert J[i, i] == pytest.approx(t * RHO_AL)

    def test_pattern(self):
        jac = _model().eval_weak_jacobian(0, 0.0, 0, PT, X0, *_state())
        # 慣性 3 + 熱容量 1 + 勾配 9×(9+1) + 伝熱 3×3
        assert jac.nnz == 3 + 1 + 90 + 9
        assert len({tuple(p) for p in jac.pairs}) == jac.nnz


class TestThermoelasticityAdjoint:
    """随伴×設計感度."""

    @pytest.mark.parametrize("seed", [0, 1])
    def test_fd(self, seed):
        rng = np.random.default_rng(seed + 30)
        Psi, Psix = rng.standard_normal(4), rng.standard_normal(12)
        report = check_adjoint_product(_model(), 0, 0.0, 0, PT, X0, *_state(seed), Psi, Psix)
        assert report.passed, (report.analytic, report.fd)


class TestThermoelasticityOutput:
    """可視化出力."""

    def test_record(self):
        t = 1.0
        model = _model(t)
        Ut, Ux = _state(5)
        req = OutputRequest(ElementType.THERMOELASTIC_3D, ALL_OUTPUT)
        data = np.zeros(req.length)
        n = model.get_output_data(
            0, 0.0, ElementType.THERMOELASTIC_3D, ALL_OUTPUT, PT, X0, Ut, Ux, data, req.length
        )
        assert n == 3 + 4 + 6 + 6 + 5
        np.testing.assert_allclose(data[3:7], Ut.reshape(4, 3)[:, 0])
        np.testing.assert_allclose(data[-3:], KAPPA * Ux.reshape(4, 4)[3, 1:])
        assert data[-5] == pytest.approx(RHO_AL)
        assert data[-4] > 0.0

    def test_solid_type_writes_nothing(self):
        data = np.zeros(30)
        n = _model().get_output_data(
            0, 0.0, ElementType.SOLID, ALL_OUTPUT, PT, X0, *_state(), data, 30
        )
        assert n == 0
