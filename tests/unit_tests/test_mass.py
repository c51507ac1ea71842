"""Unit tests for mass transforms, constants and exceptions."""

import numpy as np
import pytest

from alphalfq.constants import C13_MASS_DIFF, ELECTRON_MASS, PROTON_MASS, validate_constants
from alphalfq.exceptions import AlphaLfqError, ScorerFileMismatchError, UsageError
from alphalfq.mass import calculate_ppm_error, ppm_to_da, to_mass, to_mass_array, to_mz


class TestConstants:
    """Test physical constants are correct."""

    def test_proton_mass_correct(self):
        """PROTON_MASS is the proton, not the hydrogen atom."""
        assert abs(PROTON_MASS - 1.007276466622) < 1e-10

    def test_hydrogen_atom_mass(self):
        assert abs(PROTON_MASS + ELECTRON_MASS - 1.007825) < 0.000001

    def test_c13_spacing(self):
        assert 1.0033 < C13_MASS_DIFF < 1.0034

    def test_validate_constants(self):
        validate_constants()


class TestMassTransforms:
    """Test m/z <-> mass conversion."""

    @pytest.mark.parametrize("charge", [1, 2, 3, 4])
    def test_mz_mass_inverse(self, charge):
        mass = 1500.7
        assert to_mass(to_mz(mass, charge), charge) == pytest.approx(mass, abs=1e-9)

    def test_known_value(self):
        assert to_mz(1000.0, 2) == pytest.approx(501.007276466622)

    def test_mass_array(self):
        mz = np.array([501.007276466622, 1001.007276466622])
        charge = np.array([2, 1])

        np.testing.assert_allclose(to_mass_array(mz, charge), [1000.0, 1000.0])

    def test_ppm_error(self):
        assert calculate_ppm_error(1000.01, 1000.0) == pytest.approx(10.0)
        assert calculate_ppm_error(999.99, 1000.0) == pytest.approx(-10.0)

    def test_ppm_to_da(self):
        assert ppm_to_da(500.0, 10.0) == pytest.approx(0.005)


class TestExceptions:
    """Test the error hierarchy."""

    def test_usage_error(self):
        error = UsageError("peak has no run")

        assert isinstance(error, AlphaLfqError)
        assert isinstance(error, ValueError)
        assert error.error_code == "USAGE_ERROR"
        assert "peak has no run" in str(error)

    def test_scorer_file_mismatch(self):
        error = ScorerFileMismatchError()

        assert isinstance(error, UsageError)
        assert error.error_code == "SCORER_FILE_MISMATCH"
        assert str(error).startswith("SCORER_FILE_MISMATCH: ")
