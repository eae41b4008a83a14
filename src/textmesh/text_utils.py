from datatrees import datatree, dtfield
import numpy as np
import logging

log = logging.getLogger(__name__)


def extentsof(p: np.ndarray) -> np.ndarray:
    """Returns [[min_x, min_y, ...], [max_x, max_y, ...]] of a (N, dims) array."""
    return np.array((p.min(axis=0), p.max(axis=0)))


EPSILON = 1e-6


@datatree(frozen=True)
class CubicSpline:
    """Cubic Bezier evaluator used to flatten outline curves."""

    p: object = dtfield(doc="The control points for the spline, shape (4, N).")
    dimensions: int = dtfield(
        self_default=lambda s: np.asarray(s.p).shape[1],
        init=True,
        doc="The number of dimensions in the spline.",
    )
    coefs: np.ndarray = dtfield(init=False)

    COEFFICIENTS = np.array([
        [-1.0, 3, -3, 1],
        [3, -6, 3, 0],
        [-3, 3, 0, 0],
        [1, 0, 0, 0],
    ])  # Shape (4, 4)

    def __post_init__(self):
        p_arr = np.asarray(self.p, dtype=float)
        if p_arr.shape[0] != 4 or p_arr.ndim != 2:
            raise ValueError(
                f"CubicSpline control points 'p' must have shape (4, dims), got {p_arr.shape}"
            )
        object.__setattr__(self, "p", p_arr)
        object.__setattr__(self, "coefs", np.matmul(self.COEFFICIENTS, self.p))

    def evaluate(self, t):
        """Evaluates the spline at a scalar t, shape (dims,), or an array of t, shape (N, dims)."""
        t_arr = np.asarray(t, dtype=float)
        powers = np.stack([t_arr**3, t_arr**2, t_arr, np.ones_like(t_arr)])
        return np.tensordot(powers, self.coefs, axes=(0, 0))

    def flatten(self, segments: int) -> np.ndarray:
        """Points at t = 1/segments .. 1, the start point is excluded."""
        t_values = np.linspace(0.0, 1.0, max(1, segments) + 1)[1:]
        return self.evaluate(t_values)

    def extents(self):
        return extentsof(self.evaluate(np.linspace(0.0, 1.0, 33)))


@datatree(frozen=True)
class QuadraticSpline:
    """Quadratic Bezier evaluator used to flatten TrueType outline curves."""

    p: object = dtfield(doc="The control points for the spline, shape (3, N).")
    dimensions: int = dtfield(
        self_default=lambda s: np.asarray(s.p).shape[1],
        init=True,
        doc="The number of dimensions in the spline.",
    )
    coefs: np.ndarray = dtfield(init=False)

    COEFFICIENTS = np.array([[1.0, -2, 1], [-2.0, 2, 0], [1.0, 0, 0]])  # Shape (3, 3)

    def __post_init__(self):
        p_arr = np.asarray(self.p, dtype=float)
        if p_arr.shape[0] != 3 or p_arr.ndim != 2:
            raise ValueError(
                f"QuadraticSpline control points 'p' must have shape (3, dims), got {p_arr.shape}"
            )
        object.__setattr__(self, "p", p_arr)
        object.__setattr__(self, "coefs", np.matmul(self.COEFFICIENTS, self.p))

    def evaluate(self, t):
        """Evaluates the spline at a scalar t, shape (dims,), or an array of t, shape (N, dims)."""
        t_arr = np.asarray(t, dtype=float)
        powers = np.stack([t_arr**2, t_arr, np.ones_like(t_arr)])
        return np.tensordot(powers, self.coefs, axes=(0, 0))

    def flatten(self, segments: int) -> np.ndarray:
        """Points at t = 1/segments .. 1, the start point is excluded."""
        t_values = np.linspace(0.0, 1.0, max(1, segments) + 1)[1:]
        return self.evaluate(t_values)

    def extents(self):
        return extentsof(self.evaluate(np.linspace(0.0, 1.0, 33)))


def get_polygon_signed_area(poly_verts: np.ndarray) -> float:
    """
    Calculates the signed area of a polygon using the Shoelace formula.
    Positive for CCW winding, negative for CW (Y up).
    """
    poly_verts = np.asarray(poly_verts)

    if poly_verts.shape[0] < 3:
        return 0.0  # Not a polygon

    x = poly_verts[:, 0]
    y = poly_verts[:, 1]

    return 0.5 * float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def clean_contour(contour: np.ndarray) -> np.ndarray:
    """Removes the repeated closing point and consecutive duplicate points."""
    contour = np.asarray(contour, dtype=float)
    if len(contour) == 0:
        return contour.reshape((0, 2))
    keep = np.ones(len(contour), dtype=bool)
    keep[1:] = np.any(np.abs(np.diff(contour, axis=0)) > EPSILON, axis=1)
    contour = contour[keep]
    if len(contour) > 1 and np.allclose(contour[0], contour[-1], atol=EPSILON):
        contour = contour[:-1]
    return contour
