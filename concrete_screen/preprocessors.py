from __future__ import annotations

"""
Named preprocessing recipes applied ahead of each model.
"""

from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import PolynomialFeatures, StandardScaler


def _simple():
    return "passthrough"


def _normalized():
    return StandardScaler()


def _full_quad():
    # squared terms plus all pairwise interactions
    return make_pipeline(
        StandardScaler(), PolynomialFeatures(degree=2, include_bias=False)
    )


_BUILDERS = {
    "simple": _simple,
    "normalized": _normalized,
    "full_quad": _full_quad,
}

PREPROCESSORS = list(_BUILDERS)


def make_preprocessor(name: str):
    """Return a fresh transformer (or "passthrough") for a named recipe."""
    if name not in _BUILDERS:
        raise KeyError(f"Unknown preprocessor: {name}. Choose from {PREPROCESSORS}")
    return _BUILDERS[name]()
