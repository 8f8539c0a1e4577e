"""Pose Estimation Demo: IMU + GPS + Height + Magnetometer.

Simulates a vehicle driving on a horizontal circle and fuses its sensors
with PoseEstimation:

- 100 Hz IMU (gyro + accelerometer) drives the prediction
- 1 Hz GPS fix (geodetic position and north/east velocity)
- 10 Hz height (altimeter)
- 10 Hz magnetometer (field direction)

The GPS origin and the magnetic reference heading are derived from the first
updates. Printed metrics compare the estimate against the simulated truth.

Usage:
    python -m demos.pose_estimation_demo
    python -m demos.pose_estimation_demo --preset noisy --no-plot
"""

import argparse
from pathlib import Path
from typing import Dict

import matplotlib.pyplot as plt
import numpy as np

from navfilter.coords import GlobalReference, euler_to_quat, quat_rotate_inverse
from navfilter.estimators import (
    SystemStatus,
    chi_square_bounds,
    mahalanobis_distance_squared,
    status_to_string,
)
from navfilter.fusion import GPSUpdate, PoseEstimation, Update
from navfilter.measurements import GPS, Height, Magnetic, MagneticModel
from navfilter.models import AccelerometerModel, GenericQuaternionSystemModel, GyroModel
from navfilter.models.system_model import SystemInput

GRAVITY = 9.8065
REFERENCE_LATITUDE = np.deg2rad(49.86)
REFERENCE_LONGITUDE = np.deg2rad(8.68)


# ============================================================================
# PRESET CONFIGURATIONS
# ============================================================================

PRESETS = {
    'baseline': {
        'description': 'Consumer-grade IMU, open-sky GPS',
        'gyro_noise': np.deg2rad(0.1),
        'accel_noise': 0.05,
        'gps_position_noise': 2.0,
        'gps_velocity_noise': 0.1,
        'height_noise': 0.5,
        'mag_noise': 0.01,
    },
    'noisy': {
        'description': 'Low-cost IMU, degraded GPS',
        'gyro_noise': np.deg2rad(0.5),
        'accel_noise': 0.2,
        'gps_position_noise': 5.0,
        'gps_velocity_noise': 0.5,
        'height_noise': 2.0,
        'mag_noise': 0.05,
    },
}


# ============================================================================
# SIMULATION
# ============================================================================

def simulate(
    config: Dict,
    duration: float = 60.0,
    dt: float = 0.01,
    speed: float = 5.0,
    yaw_rate: float = 0.1,
    seed: int = 42,
) -> Dict:
    """Simulate truth and sensor streams for a constant-rate circle.

    The body x axis points along the velocity, so the only non-gravity
    specific force is the centripetal acceleration on the body y axis.

    Args:
        config: Noise configuration (see PRESETS).
        duration: Simulated time [s].
        dt: IMU period [s].
        speed: Ground speed [m/s].
        yaw_rate: Turn rate [rad/s].
        seed: Random seed.

    Returns:
        Dictionary with 't', truth arrays and per-sensor measurement lists.
    """
    rng = np.random.default_rng(seed)
    n = int(round(duration / dt)) + 1
    t = np.arange(n) * dt
    radius = speed / yaw_rate

    yaw = yaw_rate * t
    position = np.column_stack([
        radius * np.sin(yaw),
        radius * (1.0 - np.cos(yaw)),
        np.zeros(n),
    ])
    velocity = np.column_stack([
        speed * np.cos(yaw),
        speed * np.sin(yaw),
        np.zeros(n),
    ])

    reference = GlobalReference()
    reference.set_position(REFERENCE_LATITUDE, REFERENCE_LONGITUDE)
    field = MagneticModel().get_reference_field()

    imu, gps, height, magnetic = [], [], [], []
    for k in range(n):
        rate = np.array([0.0, 0.0, yaw_rate]) + rng.normal(0.0, config['gyro_noise'], 3)
        specific_force = np.array([0.0, speed * yaw_rate, GRAVITY])
        specific_force += rng.normal(0.0, config['accel_noise'], 3)
        imu.append(SystemInput(rate=rate, acceleration=specific_force, t=t[k]))

        if k % 100 == 0:
            noisy = position[k, :2] + rng.normal(0.0, config['gps_position_noise'], 2)
            latitude, longitude = reference.to_wgs84(noisy[0], noisy[1])
            v_east, v_north = velocity[k, :2] + rng.normal(0.0, config['gps_velocity_noise'], 2)
            gps.append((k, GPSUpdate(latitude, longitude, velocity_north=v_north,
                                     velocity_east=v_east, t=t[k])))
        if k % 10 == 0:
            h = position[k, 2] + rng.normal(0.0, config['height_noise'])
            height.append((k, Update(h, t=t[k])))

            m = quat_rotate_inverse(euler_to_quat(0.0, 0.0, yaw[k]), field)
            m = m + rng.normal(0.0, config['mag_noise'], 3)
            magnetic.append((k, Update(m, t=t[k])))

    return {
        't': t,
        'yaw': np.arctan2(np.sin(yaw), np.cos(yaw)),
        'position': position,
        'velocity': velocity,
        'imu': imu,
        'gps': dict(gps),
        'height': dict(height),
        'magnetic': dict(magnetic),
    }


def create_estimator(config: Dict) -> PoseEstimation:
    """Pose estimator with GPS, height and magnetometer registered."""
    system_model = GenericQuaternionSystemModel(
        gyro=GyroModel(stddev=config['gyro_noise']),
        accelerometer=AccelerometerModel(stddev=config['accel_noise']),
        position_prior_stddev=10.0,
        velocity_prior_stddev=5.0,
        orientation_prior_stddev=0.1,
    )
    estimator = PoseEstimation(system_model=system_model, gravity_magnitude=GRAVITY)
    estimator.add_measurement(GPS(
        position_stddev=config['gps_position_noise'],
        velocity_stddev=config['gps_velocity_noise'],
        timeout=5.0,
        gate_confidence=0.999,
    ))
    estimator.add_measurement(Height(stddev=config['height_noise'], timeout=1.0))
    estimator.add_measurement(Magnetic(stddev=2.0 * config['mag_noise'], timeout=1.0))
    estimator.init()
    return estimator


def run_pose_estimation(dataset: Dict, config: Dict, verbose: bool = True) -> Dict:
    """Feed the simulated streams through the estimator.

    Returns:
        History dictionary with estimated position, velocity, Euler angles,
        covariance trace and per-sensor acceptance counts.
    """
    estimator = create_estimator(config)
    if verbose:
        print("=" * 70)
        print("Pose Estimation: IMU + GPS + Height + Magnetometer")
        print("=" * 70)
        print(f"\nState dimension: {estimator.get_state().shape[0]}")
        print(f"Initial status : {status_to_string(estimator.get_system_status())}")

    history = {
        'position': [],
        'velocity': [],
        'euler': [],
        'P_trace': [],
    }
    accepted = {name: 0 for name in estimator.measurements}
    rejected = {name: 0 for name in estimator.measurements}
    gps_nis = []

    for k, system_input in enumerate(dataset['imu']):
        estimator.update(system_input)

        for name in ('gps', 'height', 'magnetic'):
            update = dataset[name].get(k)
            if update is None:
                continue
            result = estimator.correct(name, update)
            if result.accepted:
                accepted[name] += 1
            else:
                rejected[name] += 1
            if name == 'gps' and result.innovation_covariance is not None:
                gps_nis.append(mahalanobis_distance_squared(
                    result.innovation, result.innovation_covariance))

        history['position'].append(estimator.get_position())
        history['velocity'].append(estimator.get_velocity())
        history['euler'].append(estimator.get_euler())
        history['P_trace'].append(np.trace(estimator.get_covariance()))

    for key in ('position', 'velocity', 'euler', 'P_trace'):
        history[key] = np.array(history[key])
    history['accepted'] = accepted
    history['rejected'] = rejected
    history['diagnostics'] = estimator.diagnostics
    history['status'] = estimator.get_system_status()
    history['gps_nis'] = np.array(gps_nis)

    if verbose:
        print(f"\nFusion complete:")
        for name in estimator.measurements:
            print(f"  {name:<9}: {accepted[name]} accepted, {rejected[name]} skipped")
        print(f"  Final status : {status_to_string(history['status'])}")
        print(f"  Diagnostics  : {len(history['diagnostics'])}")
        if not estimator.in_system_status(SystemStatus.STATE_XY_POSITION):
            print("  WARNING: horizontal position is not estimated")

    return history


def evaluate_results(dataset: Dict, history: Dict) -> Dict:
    """Errors against the simulated truth and GPS innovation consistency."""
    position_error = history['position'][:, :2] - dataset['position'][:, :2]
    velocity_error = history['velocity'][:, :2] - dataset['velocity'][:, :2]
    yaw_error = np.arctan2(
        np.sin(history['euler'][:, 2] - dataset['yaw']),
        np.cos(history['euler'][:, 2] - dataset['yaw']),
    )
    # Skip the first GPS interval while the origin and velocity settle
    settled = dataset['t'] >= 5.0
    horizontal = np.linalg.norm(position_error, axis=1)[settled]

    lower, upper = chi_square_bounds(dof=4, confidence=0.95)
    nis = history['gps_nis']
    nis_inside = float(np.mean((nis > lower) & (nis < upper))) if len(nis) else float('nan')
    return {
        'rmse_2d': np.sqrt(np.mean(horizontal ** 2)),
        'max_error': np.max(horizontal),
        'final_error': horizontal[-1],
        'rmse_velocity': np.sqrt(np.mean(np.sum(velocity_error[settled] ** 2, axis=1))),
        'rmse_yaw_deg': np.rad2deg(np.sqrt(np.mean(yaw_error[settled] ** 2))),
        'gps_nis_inside': nis_inside,
    }


def plot_results(dataset: Dict, history: Dict, save_path: str = None) -> None:
    """Trajectory, position error, yaw and covariance trace."""
    t = dataset['t']
    fig, axes = plt.subplots(2, 2, figsize=(14, 10))

    ax = axes[0, 0]
    ax.plot(dataset['position'][:, 0], dataset['position'][:, 1], 'k-', label='Truth', linewidth=2)
    ax.plot(history['position'][:, 0], history['position'][:, 1], 'b-', label='EKF', alpha=0.7)
    ax.set_xlabel('X (East) [m]')
    ax.set_ylabel('Y (North) [m]')
    ax.set_title('Trajectory')
    ax.legend()
    ax.grid(True)
    ax.axis('equal')

    ax = axes[0, 1]
    error = np.linalg.norm(history['position'][:, :2] - dataset['position'][:, :2], axis=1)
    ax.plot(t, error, 'b-')
    ax.set_xlabel('Time [s]')
    ax.set_ylabel('Horizontal Error [m]')
    ax.set_title('Position Error vs Time')
    ax.grid(True)

    ax = axes[1, 0]
    ax.plot(t, np.rad2deg(dataset['yaw']), 'k-', label='Truth')
    ax.plot(t, np.rad2deg(history['euler'][:, 2]), 'b--', label='EKF')
    ax.set_xlabel('Time [s]')
    ax.set_ylabel('Yaw [deg]')
    ax.set_title('Heading')
    ax.legend()
    ax.grid(True)

    ax = axes[1, 1]
    ax.semilogy(t, history['P_trace'], 'b-')
    ax.set_xlabel('Time [s]')
    ax.set_ylabel('Trace(P)')
    ax.set_title('Covariance Trace')
    ax.grid(True)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"\nSaved figure: {save_path}")

    plt.show()


def main():
    """Main entry point for the pose estimation demo."""
    parser = argparse.ArgumentParser(
        description="Pose Estimation Demo (IMU + GPS + Height + Magnetometer)"
    )
    parser.add_argument(
        "--preset",
        type=str,
        choices=list(PRESETS.keys()),
        default="baseline",
        help="Sensor noise preset"
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=60.0,
        help="Simulated duration in seconds (default: 60)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed"
    )
    parser.add_argument(
        "--save",
        type=str,
        default=None,
        help="Path to save results figure"
    )
    parser.add_argument(
        "--no-plot",
        action="store_true",
        help="Skip plotting"
    )

    args = parser.parse_args()
    config = PRESETS[args.preset]

    print(f"\nPreset: {args.preset} ({config['description']})")
    dataset = simulate(config, duration=args.duration, seed=args.seed)
    history = run_pose_estimation(dataset, config, verbose=True)

    print("\n" + "=" * 70)
    print("Evaluation Metrics")
    print("=" * 70)
    metrics = evaluate_results(dataset, history)
    print(f"  RMSE (2D)      : {metrics['rmse_2d']:.3f} m")
    print(f"  Max Error      : {metrics['max_error']:.3f} m")
    print(f"  Final Error    : {metrics['final_error']:.3f} m")
    print(f"  RMSE Velocity  : {metrics['rmse_velocity']:.3f} m/s")
    print(f"  RMSE Yaw       : {metrics['rmse_yaw_deg']:.2f} deg")
    print(f"  GPS NIS in 95% : {100 * metrics['gps_nis_inside']:.1f}%")
    print("")

    if not args.no_plot:
        save_path = args.save if args.save else "demos/figs/pose_estimation_results.svg"
        Path(save_path).parent.mkdir(parents=True, exist_ok=True)
        plot_results(dataset, history, save_path=save_path)


if __name__ == "__main__":
    main()
