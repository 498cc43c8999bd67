"""点量（quantity of interest）とそのレジストリのテスト."""

from __future__ import annotations

import numpy as np
import pytest

from dvfem.core.quantity import PointQuantity, QuantityRegistry
from dvfem.elements.elasticity import LinearElasticity3D
from dvfem.elements.heat_conduction import HeatConduction2D, HeatConduction3D
from dvfem.elements.quantities import (
    DENSITY,
    FAILURE,
    HEAT_FLUX,
    STRAIN_ENERGY_DENSITY,
    TEMPERATURE,
)
from dvfem.elements.thermoelasticity import LinearThermoelasticity3D
from dvfem.fd_check import check_point_quantity_sens
from dvfem.materials.properties import MaterialProperties
from dvfem.materials.solid import SolidConstitutive
from dvfem.materials.solid_stiffness import SolidStiffness

PT = np.zeros(3)
X0 = np.array([0.3, 0.1, 0.2])


def _props() -> MaterialProperties:
    return MaterialProperties.isotropic(
        2700.0, 70e9, 0.3, ys=270e6, alpha=23e-6, kappa=237.0, specific_heat=900.0
    )


def _con(t: float = 0.8) -> SolidConstitutive:
    return SolidConstitutive(_props(), t=t, t_num=0)


def _state(nv: int, dim: int, seed: int = 0) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    Ut = rng.standard_normal((nv, 3))
    Ux = 1e-3 * rng.standard_normal((nv, dim + 1))
    Ux[:, 0] = Ut[:, 0]
    return Ut.reshape(-1), Ux.reshape(-1)


class TestQuantityValues:
    """点量の値."""

    def test_density(self):
        model = LinearElasticity3D(_con(0.8))
        res = model.eval_point_quantity(0, DENSITY, 0.0, 0, PT, X0, None, *_state(3, 3))
        assert res.supported
        assert res.size == 1
        assert res.values[0] == pytest.approx(0.8 * 2700.0)

    def test_strain_energy_density(self):
        """w = ½ e·(t C e)（材料応力に板厚を掛ける）."""
        model = LinearElasticity3D(_con(0.5))
        Ux = np.zeros((3, 4))
        Ux[0, 1] = 1e-3
        res = model.eval_point_quantity(
            0, STRAIN_ENERGY_DENSITY, 0.0, 0, PT, X0, None, np.zeros(9), Ux
        )
        s11 = model.constitutive.eval_stress(0, PT, X0, [1e-3, 0, 0, 0, 0, 0])[0]
        assert res.values[0] == pytest.approx(0.5 * 1e-3 * 0.5 * s11)

    def test_failure(self):
        model = LinearElasticity3D(_con())
        Ut, Ux = _state(3, 3)
        res = model.eval_point_quantity(0, FAILURE, 0.0, 0, PT, X0, None, Ut, Ux)
        e = model.strain_operator(0, PT, X0) @ Ux
        assert res.values[0] == pytest.approx(model.constitutive.eval_failure(0, PT, X0, e))

    def test_temperature(self):
        model = LinearThermoelasticity3D(_con())
        Ut, Ux = _state(4, 3)
        res = model.eval_point_quantity(0, TEMPERATURE, 0.0, 0, PT, X0, None, Ut, Ux)
        assert res.values[0] == Ut[9]

    def test_heat_flux_size(self):
        model2 = HeatConduction2D(_con())
        model3 = HeatConduction3D(_con())
        r2 = model2.eval_point_quantity(0, HEAT_FLUX, 0.0, 0, PT, X0, None, *_state(1, 2))
        r3 = model3.eval_point_quantity(0, HEAT_FLUX, 0.0, 0, PT, X0, None, *_state(1, 3))
        assert r2.size == 2 and r3.size == 3

    def test_unsupported(self):
        """未登録の ID は supported=False で何も書かない."""
        model = HeatConduction2D(_con())
        Ut, Ux = _state(1, 2)
        res = model.eval_point_quantity(0, FAILURE, 0.0, 0, PT, X0, None, Ut, Ux)
        assert not res.supported
        assert res.size == 0

        dfdx = np.zeros(1)
        ok = model.add_point_quantity_dv_sens(
            0, FAILURE, 0.0, 1.0, 0, PT, X0, None, Ut, Ux, np.ones(1), dfdx
        )
        assert not ok
        assert dfdx[0] == 0.0

        sens = model.eval_point_quantity_sens(
            0, "no_such_quantity", 0.0, 0, PT, X0, None, Ut, Ux, np.ones(1)
        )
        assert not sens.supported
        assert sens.dfdUt.shape == (3,)
        assert sens.dfdUx.shape == (3,)
        np.testing.assert_allclose(sens.dfdUx, 0.0)

    def test_dfdq_length_mismatch(self):
        model = HeatConduction3D(_con())
        with pytest.raises(ValueError, match="dfdq"):
            model.eval_point_quantity_sens(
                0, HEAT_FLUX, 0.0, 0, PT, X0, None, *_state(1, 3), np.ones(2)
            )


class TestQuantitySensitivities:
    """点量の状態・設計感度の中心差分検証."""

    @pytest.mark.parametrize(
        "quantity", [FAILURE, DENSITY, STRAIN_ENERGY_DENSITY]
    )
    def test_elasticity(self, quantity):
        model = LinearElasticity3D(_con())
        report = check_point_quantity_sens(
            model, 0, quantity, 0.0, 0, PT, X0, None, *_state(3, 3, 1), np.array([1.7])
        )
        assert report.passed, (report.analytic, report.fd)

    @pytest.mark.parametrize("quantity", [FAILURE, STRAIN_ENERGY_DENSITY])
    def test_elasticity_modulus(self, quantity):
        model = LinearElasticity3D(SolidStiffness(2700.0, 70e9, 0.3, e_num=0, ys=270e6))
        report = check_point_quantity_sens(
            model, 0, quantity, 0.0, 0, PT, X0, None, *_state(3, 3, 2), np.array([0.6])
        )
        assert report.passed, (report.analytic, report.fd)

    @pytest.mark.parametrize(
        "quantity,dfdq",
        [
            (FAILURE, [1.0]),
            (DENSITY, [1.0]),
            (STRAIN_ENERGY_DENSITY, [2.0]),
            (TEMPERATURE, [1.5]),
            (HEAT_FLUX, [0.3, -1.0, 2.0]),
        ],
    )
    def test_thermoelasticity(self, quantity, dfdq):
        model = LinearThermoelasticity3D(_con())
        report = check_point_quantity_sens(
            model, 0, quantity, 0.0, 0, PT, X0, None, *_state(4, 3, 3), np.array(dfdq)
        )
        assert report.passed, (report.analytic, report.fd)

    @pytest.mark.parametrize("cls,dim", [(HeatConduction2D, 2), (HeatConduction3D, 3)])
    def test_heat_flux(self, cls, dim):
        model = cls(_con())
        dfdq = np.linspace(-1.0, 1.0, dim)
        report = check_point_quantity_sens(
            model, 0, HEAT_FLUX, 0.0, 0, PT, X0, None, *_state(1, dim, 4), dfdq
        )
        assert report.passed, (report.analytic, report.fd)

    def test_dv_sens_scale_and_accumulate(self):
        model = LinearElasticity3D(_con())
        Ut, Ux = _state(3, 3)
        dfdx = np.array([1.0])
        model.add_point_quantity_dv_sens(
            0, DENSITY, 0.0, 3.0, 0, PT, X0, None, Ut, Ux, np.array([2.0]), dfdx
        )
        assert dfdx[0] == pytest.approx(1.0 + 3.0 * 2.0 * 2700.0)


class _DisplacementNorm(PointQuantity):
    """テスト用: 変位の 2 乗ノルム."""

    def size(self, model) -> int:
        return 1

    def evaluate(self, model, ctx):
        return np.array([float(ctx.Ut[:3, 0] @ ctx.Ut[:3, 0])])

    def eval_state_sens(self, model, ctx, dfdq):
        dfdUt = np.zeros_like(ctx.Ut)
        dfdUt[:3, 0] = 2.0 * dfdq[0] * ctx.Ut[:3, 0]
        return np.zeros(3), np.zeros(9), dfdUt, np.zeros_like(ctx.Ux)


class TestQuantityRegistry:
    """レジストリの拡張."""

    def test_extension_without_modifying_base(self):
        class ExtendedElasticity(LinearElasticity3D):
            quantities = LinearElasticity3D.quantities.with_quantity(
                "displacement_norm", _DisplacementNorm()
            )

        assert "displacement_norm" not in LinearElasticity3D.quantities
        assert FAILURE in ExtendedElasticity.quantities

        model = ExtendedElasticity(_con())
        Ut, Ux = _state(3, 3)
        res = model.eval_point_quantity(0, "displacement_norm", 0.0, 0, PT, X0, None, Ut, Ux)
        u = Ut.reshape(3, 3)[:, 0]
        assert res.values[0] == pytest.approx(u @ u)

        report = check_point_quantity_sens(
            model, 0, "displacement_norm", 0.0, 0, PT, X0, None, Ut, Ux, np.ones(1)
        )
        assert report.passed

        base = LinearElasticity3D(_con())
        assert not base.eval_point_quantity(
            0, "displacement_norm", 0.0, 0, PT, X0, None, Ut, Ux
        ).supported

    def test_duplicate_rejected(self):
        with pytest.raises(ValueError, match="重複"):
            LinearElasticity3D.quantities.with_quantity(FAILURE, _DisplacementNorm())

    def test_invalid_entries(self):
        with pytest.raises(ValueError):
            QuantityRegistry({"": _DisplacementNorm()})
        with pytest.raises(ValueError):
            QuantityRegistry({"x": object()})

    def test_mapping_interface(self):
        reg = LinearThermoelasticity3D.quantities
        assert len(reg) == 5
        assert set(reg) == {FAILURE, DENSITY, STRAIN_ENERGY_DENSITY, TEMPERATURE, HEAT_FLUX}
        assert "QuantityRegistry" in repr(reg)
