"""
3D vector utilities for turtle orientation and mesh construction.

All vectors are float numpy arrays of shape (3,). Angles passed to the
public helpers are in degrees, matching the turtle configuration.
"""

from __future__ import annotations

import math

import numpy as np

EPSILON = 1e-6

X_AXIS = np.array([1.0, 0.0, 0.0])
Y_AXIS = np.array([0.0, 1.0, 0.0])
Z_AXIS = np.array([0.0, 0.0, 1.0])


# =============================================================================
# BASIC VECTOR OPS
# =============================================================================

def vec3(x: float, y: float, z: float) -> np.ndarray:
    """Create a 3D vector."""
    return np.array([x, y, z], dtype=float)


def as_vec3(v) -> np.ndarray:
    """Coerce a sequence of three numbers to a float vector (copying)."""
    return np.array(v, dtype=float).reshape(3)


def vec_mag(v: np.ndarray) -> float:
    """Magnitude of a vector."""
    return float(np.linalg.norm(v))


def vec_normalize(v: np.ndarray) -> np.ndarray:
    """Normalize a vector. Near-zero input gives the zero vector."""
    m = vec_mag(v)
    if m < EPSILON:
        return np.zeros(3)
    return v / m


def lerp_radius(start_radius: float, end_radius: float, t: float) -> float:
    """Linear interpolation between two radii."""
    return start_radius + (end_radius - start_radius) * t


# =============================================================================
# ROTATIONS
# =============================================================================

def rotate_about_axis(v: np.ndarray, axis: np.ndarray, angle_deg: float) -> np.ndarray:
    """
    Rotate v around an arbitrary axis using Rodrigues' formula.

    v' = v cos(a) + (k x v) sin(a) + k (k . v)(1 - cos(a))

    The axis is normalized here; a degenerate axis returns v unchanged.
    """
    k = vec_normalize(axis)
    if not k.any():
        return np.array(v, dtype=float)
    a = math.radians(angle_deg)
    c, s = math.cos(a), math.sin(a)
    return v * c + np.cross(k, v) * s + k * float(np.dot(k, v)) * (1.0 - c)


def rotate_x(v: np.ndarray, angle_deg: float) -> np.ndarray:
    """Rotate around the world X axis."""
    return rotate_about_axis(v, X_AXIS, angle_deg)


def rotate_y(v: np.ndarray, angle_deg: float) -> np.ndarray:
    """Rotate around the world Y axis."""
    return rotate_about_axis(v, Y_AXIS, angle_deg)


def rotate_z(v: np.ndarray, angle_deg: float) -> np.ndarray:
    """Rotate around the world Z axis."""
    return rotate_about_axis(v, Z_AXIS, angle_deg)


# =============================================================================
# BASES
# =============================================================================

def reference_axis(direction: np.ndarray, threshold: float = 0.9) -> np.ndarray:
    """World axis that is safely non-parallel to direction (Z, or X near the poles)."""
    return Z_AXIS if abs(direction[2]) < threshold else X_AXIS


def perpendicular_vectors(direction: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Two unit vectors spanning the plane perpendicular to direction.

    Returns (right, up) such that right x up == direction, so points swept
    by increasing angle go counter-clockwise seen from the tip.
    """
    d = vec_normalize(direction)
    right = vec_normalize(np.cross(reference_axis(d), d))
    up = np.cross(d, right)
    return right, up


def reorthonormalize(
    forward: np.ndarray, left: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Repair accumulated drift in a (forward, left, up) frame.

    Gram-Schmidt: forward is normalized, left is made orthogonal to it,
    and up is rebuilt as forward x left. If left collapses onto forward a
    fresh one is derived from a world reference axis.
    """
    f = vec_normalize(forward)
    side = left - f * float(np.dot(left, f))
    if vec_mag(side) < EPSILON:
        side = np.cross(reference_axis(f), f)
    side = vec_normalize(side)
    up = np.cross(f, side)
    return f, side, up


def basis_matrix(forward: np.ndarray, left: np.ndarray, up: np.ndarray) -> np.ndarray:
    """3x3 matrix with forward, left, up as columns."""
    return np.column_stack([forward, left, up])


# =============================================================================
# BRANCH WIDTHS
# =============================================================================

def child_width(parent_width: float, num_children: int, exponent: float = 2.0) -> float:
    """
    Leonardo's rule: the cross sections of N equal children sum to the parent's.

    w_child = w_parent / N^(1/exponent)
    """
    if num_children <= 0:
        return parent_width
    return parent_width / num_children ** (1.0 / exponent)


def width_at_depth(
    initial_width: float, falloff: float, depth: int, min_width: float
) -> float:
    """Width after `depth` branch pushes, floored at min_width."""
    return max(initial_width * falloff**depth, min_width)


# =============================================================================
# RINGS AND TRIANGLES
# =============================================================================

def point_on_circle(
    center: np.ndarray,
    right: np.ndarray,
    up: np.ndarray,
    radius: float,
    angle_deg: float,
) -> np.ndarray:
    """Point at angle_deg on the circle spanned by right/up around center."""
    a = math.radians(angle_deg)
    return center + radius * (math.cos(a) * right + math.sin(a) * up)


def ring_points(
    center: np.ndarray, direction: np.ndarray, radius: float, count: int
) -> np.ndarray:
    """count evenly spaced points around direction, shape (count, 3)."""
    right, up = perpendicular_vectors(direction)
    angles = np.linspace(0.0, 2.0 * math.pi, count, endpoint=False)
    offsets = np.cos(angles)[:, None] * right + np.sin(angles)[:, None] * up
    return center + radius * offsets


def triangle_normal(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    """Unit normal of a counter-clockwise triangle."""
    return vec_normalize(np.cross(b - a, c - a))
