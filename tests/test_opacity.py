"""
Tests for opacity / EOS providers.

Validates:
- Analytic ideal gas energy-temperature relation
- Table round trip through tabulate_opacity
- Temperature inversion and clamping
- Malformed tables are rejected
"""

import numpy as np
import pytest

from disc_sph.constants import K_B_CGS, M_P_CGS, MU
from disc_sph.eos import AnalyticOpacity, OpacityTable, load_opacity, tabulate_opacity


@pytest.fixture
def table_path(tmp_path):
    model = AnalyticOpacity(kappa0=1e-3, kappar0=2e-3, beta=2.0)
    densities = np.logspace(-16, -8, 9)
    temperatures = np.logspace(0.5, 4.0, 36)
    return tabulate_opacity(model, densities, temperatures, tmp_path / "eos.dat")


class TestAnalyticOpacity:
    def test_energy_temperature_inverse(self):
        opacity = AnalyticOpacity()
        T = np.array([5.0, 20.0, 300.0])
        u = opacity.get_energy(1e-10, T)
        np.testing.assert_allclose(opacity.get_temp(1e-10, u), T)

    def test_ideal_gas_energy(self):
        opacity = AnalyticOpacity(gamma=5.0 / 3.0)
        expected = K_B_CGS * 100.0 / ((2.0 / 3.0) * MU * M_P_CGS)
        assert opacity.get_energy(1e-12, 100.0) == pytest.approx(expected)

    def test_power_law_opacity(self):
        opacity = AnalyticOpacity(kappa0=1e-3, kappar0=4e-3, beta=2.0)
        assert opacity.get_kappa(1e-10, 10.0) == pytest.approx(0.1)
        assert opacity.get_kappar(1e-10, 10.0) == pytest.approx(0.4)

    def test_broadcasting(self):
        opacity = AnalyticOpacity()
        gamma = opacity.get_gamma(np.ones(4), 10.0)
        assert gamma.shape == (4,)
        np.testing.assert_allclose(gamma, 5.0 / 3.0)

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            AnalyticOpacity(gamma=1.0)
        with pytest.raises(ValueError):
            AnalyticOpacity(mu=0.0)


class TestOpacityTable:
    def test_grid_values(self, table_path):
        table = OpacityTable(table_path)
        assert len(table.densities) == 9
        assert len(table.temperatures) == 36
        np.testing.assert_allclose(
            table.get_kappa(table.densities[3], table.temperatures[10]), table.kappa[3, 10]
        )

    def test_power_law_interpolates_exactly(self, table_path):
        table = OpacityTable(table_path)
        # log kappa is linear in log T
        assert table.get_kappa(3e-12, 123.0) == pytest.approx(1e-3 * 123.0 ** 2, rel=1e-8)
        assert table.get_kappar(3e-12, 123.0) == pytest.approx(2e-3 * 123.0 ** 2, rel=1e-8)

    def test_temperature_inversion(self, table_path):
        table = OpacityTable(table_path)
        analytic = AnalyticOpacity()
        T = np.array([10.0, 77.0, 2500.0])
        rho = np.array([1e-14, 5e-11, 1e-9])
        np.testing.assert_allclose(table.get_temp(rho, analytic.get_energy(rho, T)), T, rtol=1e-8)

    def test_clamped_to_range(self, table_path):
        table = OpacityTable(table_path)
        assert table.get_kappa(1e-30, 50.0) == pytest.approx(table.get_kappa(1e-16, 50.0))
        T_max = table.temperatures[-1]
        assert table.get_temp(1e-12, 1e30) == pytest.approx(T_max)
        assert table.get_temp(1e-12, 0.0) == pytest.approx(table.temperatures[0])

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            OpacityTable(tmp_path / "nope.dat")

    def test_bad_header(self, tmp_path):
        path = tmp_path / "bad.dat"
        path.write_text("densities temperatures\n1 2 3 4 5 6\n")
        with pytest.raises(ValueError, match="n_dens n_temp"):
            OpacityTable(path)

    def test_wrong_row_count(self, tmp_path, table_path):
        lines = table_path.read_text().splitlines()
        path = tmp_path / "short.dat"
        path.write_text("\n".join(lines[:-1]) + "\n")
        with pytest.raises(ValueError, match="expected"):
            OpacityTable(path)

    def test_non_increasing_axis(self, tmp_path):
        path = tmp_path / "flat.dat"
        rows = ["2 2"]
        for d in (1e-10, 1e-10):
            for t in (10.0, 20.0):
                rows.append(f"{d} {t} 1e9 1.6 1.0 1.0")
        path.write_text("\n".join(rows) + "\n")
        with pytest.raises(ValueError, match="increasing"):
            OpacityTable(path)


class TestLoadOpacity:
    def test_default_is_analytic(self):
        assert isinstance(load_opacity(None), AnalyticOpacity)
        assert isinstance(load_opacity(""), AnalyticOpacity)

    def test_table(self, table_path):
        opacity = load_opacity(table_path)
        assert isinstance(opacity, OpacityTable)
        assert opacity.get_file_name() == str(table_path)
