"""Basic functionality tests for the fusion UKF."""

import logging
import math

import numpy as np
import pytest

from fusionukf import (
    FilterConfig,
    FilterParameterError,
    FusionUKFError,
    Measurement,
    MeasurementOrderError,
    NumericalInstabilityError,
    SensorType,
    UnscentedKalmanFilter,
)
from fusionukf.models import LIDAR_H, predict_sigma_points, radar_measurement
from fusionukf.sigma import generate_sigma_points, predict_mean_and_covariance
from fusionukf.utils import is_positive_definite

T0 = 1477010443000000


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ukf():
    """A filter with the default noise model."""
    return UnscentedKalmanFilter()


@pytest.fixture
def tracking(ukf):
    """A filter initialised from a lidar reading at (1.0, 0.5)."""
    ukf.process_measurement(Measurement.lidar(1.0, 0.5, T0))
    return ukf


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreation:
    def test_basic_creation(self, ukf):
        assert ukf.state_dim == 5
        assert not ukf.is_initialized
        assert ukf.previous_timestamp is None
        assert ukf.config == FilterConfig()

    def test_repr(self, ukf):
        r = repr(ukf)
        assert "state_dim=5" in r
        assert "initialized=False" in r

    def test_overrides(self):
        ukf = UnscentedKalmanFilter(std_a=2.0, use_radar=False)
        assert ukf.config.std_a == 2.0
        assert ukf.use_lidar
        assert not ukf.use_radar

    def test_config_with_overrides(self):
        config = FilterConfig(std_yawdd=0.5)
        ukf = UnscentedKalmanFilter(config, use_lidar=False)
        assert ukf.config.std_yawdd == 0.5
        assert not ukf.use_lidar

    def test_invalid_noise(self):
        with pytest.raises(FilterParameterError):
            UnscentedKalmanFilter(std_radr=0.0)

    def test_parameter_error_is_value_error(self):
        with pytest.raises(ValueError):
            UnscentedKalmanFilter(std_laspx=-1.0)

    def test_weights(self, ukf):
        w = ukf.weights
        assert w.shape == (15,)
        assert w[0] == pytest.approx(-4.0 / 3.0)
        np.testing.assert_allclose(w[1:], 1.0 / 6.0)


# ---------------------------------------------------------------------------
# State / covariance get and set
# ---------------------------------------------------------------------------


class TestState:
    def test_initial_state_zero(self, ukf):
        np.testing.assert_array_equal(ukf.x, np.zeros(5))

    def test_set_state(self, ukf):
        ukf.x = np.array([1.5, -0.3, 2.0, 0.1, 0.0])
        np.testing.assert_allclose(ukf.x, [1.5, -0.3, 2.0, 0.1, 0.0])

    def test_set_state_wraps_heading(self, ukf):
        ukf.x = np.array([0.0, 0.0, 1.0, 3 * math.pi / 2, 0.0])
        assert ukf.x[3] == pytest.approx(-math.pi / 2)

    def test_set_state_wrong_length(self, ukf):
        with pytest.raises(ValueError):
            ukf.x = np.array([1.0, 2.0, 3.0])

    def test_state_is_a_copy(self, ukf):
        x = ukf.x
        x[0] = 99.0
        assert ukf.x[0] == 0.0


class TestCovariance:
    def test_initial_P(self, ukf):
        np.testing.assert_array_equal(ukf.P, np.eye(5))

    def test_custom_initial_P(self):
        ukf = UnscentedKalmanFilter(initial_covariance=(1, 1, 10, 10, 1))
        np.testing.assert_array_equal(np.diag(ukf.P), [1, 1, 10, 10, 1])

    def test_set_P(self, ukf):
        new_P = 0.5 * np.eye(5)
        ukf.P = new_P
        np.testing.assert_array_equal(ukf.P, new_P)

    def test_set_P_wrong_shape(self, ukf):
        with pytest.raises((ValueError, FilterParameterError)):
            ukf.P = np.eye(3)


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


class TestInitialization:
    def test_lidar_seeds_position(self, tracking):
        assert tracking.is_initialized
        np.testing.assert_allclose(tracking.x, [1.0, 0.5, 0.0, 0.0, 0.0])
        assert tracking.previous_timestamp == T0

    def test_radar_seeds_position(self, ukf):
        ukf.process_measurement(Measurement.radar(2.0, math.pi / 2, 5.0, T0))
        np.testing.assert_allclose(ukf.x, [0.0, 2.0, 0.0, 0.0, 0.0], atol=1e-12)

    def test_no_prediction_on_first_call(self, tracking):
        np.testing.assert_array_equal(tracking.P, np.eye(5))
        assert tracking.sigma_points_pred is None

    def test_disabled_sensor_still_initializes(self):
        ukf = UnscentedKalmanFilter(use_lidar=False)
        ukf.process_measurement(Measurement.lidar(3.0, 4.0, T0))
        assert ukf.is_initialized
        np.testing.assert_allclose(ukf.x[:2], [3.0, 4.0])

    def test_reset(self, tracking):
        result = tracking.reset()
        assert result is tracking
        assert not tracking.is_initialized
        np.testing.assert_array_equal(tracking.x, np.zeros(5))


# ---------------------------------------------------------------------------
# Measurement processing
# ---------------------------------------------------------------------------


class TestProcessMeasurement:
    def test_lidar_smoothing(self, tracking):
        trace_before = np.trace(tracking.P)
        tracking.process_measurement(Measurement.lidar(1.1, 0.55, T0 + 100000))
        assert 1.0 < tracking.x[0] < 1.1
        assert 0.5 < tracking.x[1] < 0.55
        assert np.trace(tracking.P) < trace_before
        assert tracking.previous_timestamp == T0 + 100000

    def test_radar_update_runs(self, tracking):
        tracking.process_measurement(
            Measurement.radar(math.hypot(1.1, 0.5), math.atan2(0.5, 1.1), 1.0, T0 + 50000)
        )
        assert tracking.nis_radar is not None
        assert np.all(np.isfinite(tracking.x))

    def test_method_chaining(self, ukf):
        result = ukf.process_measurement(Measurement.lidar(1.0, 0.5, T0)).process_measurement(
            Measurement.lidar(1.0, 0.5, T0 + 50000)
        )
        assert result is ukf

    def test_out_of_order_rejected(self, tracking):
        x_before, P_before = tracking.x, tracking.P
        with pytest.raises(MeasurementOrderError):
            tracking.process_measurement(Measurement.lidar(1.1, 0.55, T0 - 1))
        np.testing.assert_array_equal(tracking.x, x_before)
        np.testing.assert_array_equal(tracking.P, P_before)
        assert tracking.previous_timestamp == T0

    def test_out_of_order_is_value_error(self, tracking):
        with pytest.raises(ValueError):
            tracking.process_measurement(Measurement.lidar(1.1, 0.55, T0 - 1000))

    def test_duplicate_timestamp_accepted(self, tracking):
        tracking.process_measurement(Measurement.lidar(1.0, 0.5, T0))
        assert tracking.previous_timestamp == T0
        np.testing.assert_allclose(tracking.x[:2], [1.0, 0.5], atol=1e-9)

    def test_disabled_sensor_ignored(self):
        ukf = UnscentedKalmanFilter(use_radar=False)
        ukf.process_measurement(Measurement.lidar(1.0, 0.5, T0))
        x_before, P_before = ukf.x, ukf.P
        ukf.process_measurement(Measurement.radar(5.0, 0.3, 1.0, T0 + 50000))
        np.testing.assert_array_equal(ukf.x, x_before)
        np.testing.assert_array_equal(ukf.P, P_before)
        assert ukf.previous_timestamp == T0
        assert ukf.nis_radar is None

    def test_toggle_at_runtime(self, tracking):
        tracking.use_lidar = False
        tracking.process_measurement(Measurement.lidar(2.0, 2.0, T0 + 50000))
        assert tracking.previous_timestamp == T0


# ---------------------------------------------------------------------------
# Numerical failures
# ---------------------------------------------------------------------------


class TestNumericalFailures:
    def test_bad_covariance_is_reset(self, tracking, caplog):
        tracking.P = -np.eye(5)
        with caplog.at_level(logging.WARNING, logger="fusionukf.core"):
            tracking.process_measurement(Measurement.lidar(1.1, 0.55, T0 + 100000))
        assert tracking.previous_timestamp == T0 + 100000
        assert 1.0 < tracking.x[0] < 1.1
        assert is_positive_definite(tracking.P)
        assert "resetting covariance" in caplog.text

    def test_non_finite_state_holds_prior_state(self, tracking, caplog):
        tracking.x = [np.nan, 0.5, 0.0, 0.0, 0.0]
        with caplog.at_level(logging.WARNING, logger="fusionukf.core"):
            tracking.process_measurement(Measurement.lidar(1.1, 0.55, T0 + 100000))
        assert np.isnan(tracking.x[0])
        assert tracking.previous_timestamp == T0
        assert "holding prior state" in caplog.text

    def test_indefinite_posterior_is_repaired(self, ukf, caplog):
        ukf.P = -np.eye(5)
        with caplog.at_level(logging.WARNING, logger="fusionukf.core"):
            ukf.update_lidar([0.1, 0.1])
        assert is_positive_definite(ukf.P)
        np.testing.assert_allclose(ukf.P, ukf.P.T)
        assert "repairing" in caplog.text

    def test_keeps_tracking_after_indefinite_covariance(self):
        # huge prior variances make P - K S K^T indefinite at the first update
        ukf = UnscentedKalmanFilter(initial_covariance=(1e6,) * 5)
        ukf.process_measurement(Measurement.lidar(1.0, 0.5, T0))
        previous_x = ukf.x
        moved = 0
        for k in range(1, 50):
            t = 0.05 * k
            ts = T0 + 50000 * k
            px, py = 1.0 + 2.0 * t, 0.5
            if k % 2:
                ukf.process_measurement(Measurement.lidar(px, py, ts))
            else:
                rho = math.hypot(px, py)
                ukf.process_measurement(
                    Measurement.radar(rho, math.atan2(py, px), 2.0 * px / rho, ts)
                )
            assert ukf.previous_timestamp == ts
            assert np.all(np.isfinite(ukf.x))
            assert is_positive_definite(ukf.P)
            moved += not np.array_equal(ukf.x, previous_x)
            previous_x = ukf.x
        assert moved == 49

    def test_bad_covariance_raises_when_strict(self):
        ukf = UnscentedKalmanFilter(raise_on_instability=True)
        ukf.process_measurement(Measurement.lidar(1.0, 0.5, T0))
        ukf.P = -np.eye(5)
        with pytest.raises(NumericalInstabilityError):
            ukf.process_measurement(Measurement.lidar(1.1, 0.55, T0 + 100000))
        assert ukf.previous_timestamp == T0

    def test_direct_predict_raises(self, ukf):
        ukf.P = np.zeros((5, 5))
        with pytest.raises(NumericalInstabilityError):
            ukf.predict(0.1)

    def test_degenerate_radar_skips_update(self, caplog):
        ukf = UnscentedKalmanFilter()
        ukf.process_measurement(Measurement.lidar(0.0, 0.0, T0))
        ukf.nis_radar = 2.5
        with caplog.at_level(logging.WARNING, logger="fusionukf.core"):
            ukf.process_measurement(Measurement.radar(0.5, 0.0, 0.0, T0 + 50000))
        # a skipped update leaves no stale consistency score behind
        assert ukf.nis_radar is None
        assert ukf.previous_timestamp == T0 + 50000
        # prediction survives: heading uncertainty grew with dt
        assert ukf.P[3, 3] > 1.0
        assert "radar update" in caplog.text

    def test_degenerate_radar_raises_when_strict(self):
        ukf = UnscentedKalmanFilter(raise_on_instability=True)
        ukf.process_measurement(Measurement.lidar(0.0, 0.0, T0))
        with pytest.raises(FusionUKFError):
            ukf.process_measurement(Measurement.radar(0.5, 0.0, 0.0, T0 + 50000))
        assert ukf.previous_timestamp == T0 + 50000


# ---------------------------------------------------------------------------
# Predict / update steps
# ---------------------------------------------------------------------------


class TestPredictUpdate:
    def test_zero_dt_predict_preserves_belief(self, ukf):
        x0 = np.array([1.0, 2.0, 3.0, 0.5, 0.1])
        P0 = np.diag([0.5, 0.4, 0.3, 0.2, 0.1])
        ukf.x = x0
        ukf.P = P0
        ukf.predict(0.0)
        np.testing.assert_allclose(ukf.x, x0, atol=1e-12)
        np.testing.assert_allclose(ukf.P, P0, atol=1e-12)

    def test_predict_stores_sigma_points(self, ukf):
        ukf.predict(0.1)
        assert ukf.sigma_points_pred.shape == (5, 15)

    def test_predict_increases_uncertainty(self, ukf):
        ukf.x = np.array([1.0, 1.0, 2.0, 0.3, 0.1])
        ukf.P = 0.1 * np.eye(5)
        trace_before = np.trace(ukf.P)
        ukf.predict(0.1)
        assert np.trace(ukf.P) > trace_before

    def test_predict_moves_along_heading(self, ukf):
        ukf.x = np.array([0.0, 0.0, 2.0, 0.0, 0.0])
        ukf.P = 1e-4 * np.eye(5)
        ukf.predict(0.5)
        assert ukf.x[0] == pytest.approx(1.0, abs=1e-3)
        assert ukf.x[1] == pytest.approx(0.0, abs=1e-3)

    def test_lidar_zero_innovation(self, ukf):
        x0 = np.array([1.0, 2.0, 0.5, 0.1, 0.0])
        ukf.x = x0
        trace_before = np.trace(ukf.P)
        ukf.update_lidar(LIDAR_H @ x0)
        np.testing.assert_allclose(ukf.x, x0, atol=1e-12)
        assert np.trace(ukf.P) < trace_before
        assert ukf.nis_lidar == pytest.approx(0.0)

    def test_lidar_update_wrong_dim(self, ukf):
        with pytest.raises(ValueError):
            ukf.update_lidar(np.array([1.0, 2.0, 3.0]))

    def test_radar_consistent_prediction(self, ukf):
        x0 = np.array([1.0, 1.0, 2.0, math.pi / 4, 0.0])
        z = np.array([math.sqrt(2.0), math.pi / 4, 2.0])
        ukf.x = x0
        ukf.P = 1e-4 * np.eye(5)

        Xsig_aug = generate_sigma_points(ukf.x, ukf.P, ukf.config.process_noise_var())
        Zsig = radar_measurement(predict_sigma_points(Xsig_aug, 0.0))
        z_pred, _ = predict_mean_and_covariance(Zsig, ukf.weights, angle_index=1)
        np.testing.assert_allclose(z_pred, z, atol=1e-3)

        ukf.predict(0.0)
        ukf.update_radar(z)
        np.testing.assert_allclose(ukf.x, x0, atol=1e-3)
        assert ukf.nis_radar < 1e-3

    def test_radar_update_without_predict(self, ukf):
        ukf.x = np.array([3.0, 4.0, 1.0, 0.0, 0.0])
        ukf.update_radar(np.array([5.2, math.atan2(4.0, 3.0), 0.6]))
        assert ukf.x[0] ** 2 + ukf.x[1] ** 2 > 25.0

    def test_radar_bearing_across_pi(self, ukf):
        # target just behind the sensor, bearing measured on the other side of +-pi
        ukf.x = np.array([-5.0, 0.01, 0.0, 0.0, 0.0])
        ukf.P = 0.01 * np.eye(5)
        ukf.predict(0.0)
        ukf.update_radar(np.array([5.0, -math.pi + 0.001, 0.0]))
        assert ukf.x[0] == pytest.approx(-5.0, abs=0.05)
        assert abs(ukf.x[1]) < 0.05

    def test_updates_keep_covariance_symmetric(self, tracking):
        tracking.process_measurement(Measurement.radar(1.2, 0.4, 0.5, T0 + 50000))
        tracking.process_measurement(Measurement.lidar(1.15, 0.52, T0 + 100000))
        P = tracking.P
        np.testing.assert_array_equal(P, P.T)
        assert np.all(np.linalg.eigvalsh(P) > 0)


class TestMeasurement:
    def test_sensor_dims(self):
        assert SensorType.LIDAR.meas_dim == 2
        assert SensorType.RADAR.meas_dim == 3

    def test_wrong_length(self):
        with pytest.raises(FilterParameterError):
            Measurement(SensorType.RADAR, [1.0, 2.0], T0)

    def test_non_finite(self):
        with pytest.raises(FilterParameterError):
            Measurement.lidar(float("nan"), 0.0, T0)

    def test_sensor_from_string(self):
        m = Measurement("radar", [1.0, 0.1, 0.0], T0)
        assert m.sensor_type is SensorType.RADAR

    def test_immutable_values(self):
        m = Measurement.lidar(1.0, 2.0, T0)
        with pytest.raises(ValueError):
            m.raw_measurements[0] = 5.0

    def test_elapsed_seconds(self):
        m = Measurement.lidar(1.0, 2.0, T0 + 250000)
        assert m.elapsed_since(T0) == pytest.approx(0.25)
