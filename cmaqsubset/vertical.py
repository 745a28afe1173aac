__all__ = [
    'VerticalLevelSpec', 'TerrainProfileCache', 'level_profile',
    'level_elevations', 'layer_center_elevations', 'zh_elevations'
]

import warnings
import numpy as np

from .errors import InvalidParameter, DefensiveRepairWarning

# IOAPI VGTYP codes
VGSGPH3 = 1  # hydrostatic sigma-P
VGSGPN3 = 2  # non-hydrostatic sigma-P
VGSIGZ3 = 3  # sigma-Z
VGPRES3 = 4  # pressure (Pa)
VGZVAL3 = 5  # height above sea level (m)
VGHVAL3 = 6  # height above ground (m)
VGWRFEM = 7  # WRF-style sigma-P

sigma_pressure_types = (VGSGPH3, VGSGPN3, VGWRFEM)
sigma_types = sigma_pressure_types + (VGSIGZ3,)
vgtyp_names = {
    VGSGPH3: 'hydrostatic sigma-P',
    VGSGPN3: 'non-hydrostatic sigma-P',
    VGSIGZ3: 'sigma-Z',
    VGPRES3: 'pressure (Pa)',
    VGZVAL3: 'height above sea level (m)',
    VGHVAL3: 'height above ground (m)',
    VGWRFEM: 'WRF sigma-P',
}

# Hypsometric constants
G = 9.81  # m/s2
R = 287.04  # J/kg/K
A = 50.  # K
T0S = 290.  # K
P00 = 100000.  # Pa

MINIMUM_ELEVATION = -1000.
MAXIMUM_ELEVATION = 100000.
MINIMUM_PRESSURE = 1.
MAXIMUM_PRESSURE = 1e6

DEFAULT_VGTYP = VGSGPN3
DEFAULT_VGTOP = 5000.
# Synthetic sigma levels step by 1 / max(MXLAYS3, layers)
MXLAYS3 = 100


def _warn_repair(field, old, new, onrepair):
    warnings.warn(
        f'{field}={old} is invalid; using {new}', DefensiveRepairWarning,
        stacklevel=3
    )
    if onrepair is not None:
        onrepair(field, old, new)


def synthetic_levels(nlayers):
    """
    Uniformly spaced sigma levels 1, 1 - 1/n, ... for nlayers layers where
    n = max(MXLAYS3, nlayers).
    """
    n = max(MXLAYS3, nlayers)
    return 1 - np.arange(nlayers + 1) / n


class VerticalLevelSpec:
    """
    Vertical grid description: VGTYP code, VGTOP (Pa for sigma-P types, m for
    sigma-Z) and VGLVLS (nlayers + 1 level values).

    Use from_attrs or check_and_fix to get a spec whose invalid metadata has
    been repaired.
    """
    def __init__(self, VGTYP, VGTOP, VGLVLS):
        self.VGTYP = int(VGTYP)
        self.VGTOP = float(VGTOP)
        self.VGLVLS = np.array(VGLVLS, dtype='d', ndmin=1)
        self.VGLVLS.flags.writeable = False
        if self.VGLVLS.size < 2:
            raise InvalidParameter(
                'VGLVLS', f'needs at least 2 levels; got {self.VGLVLS.size}'
            )

    @classmethod
    def from_attrs(cls, attrs, onrepair=None):
        """
        Arguments
        ---------
        attrs : mappable
            IOAPI attributes VGTYP, VGTOP, VGLVLS
        onrepair : callable or None
            Called as onrepair(field, old, new) for each repaired field

        Returns
        -------
        spec : VerticalLevelSpec
            Validated (and possibly repaired) spec
        """
        for key in ['VGTYP', 'VGTOP', 'VGLVLS']:
            if key not in attrs:
                raise InvalidParameter(key, 'missing vertical attribute')
        spec = cls(attrs['VGTYP'], attrs['VGTOP'], attrs['VGLVLS'])
        return spec.check_and_fix(onrepair=onrepair)

    def __repr__(self):
        return (
            f'VerticalLevelSpec(VGTYP={self.VGTYP}, VGTOP={self.VGTOP},'
            + f' VGLVLS={self.VGLVLS.tolist()})'
        )

    @property
    def nlayers(self):
        return self.VGLVLS.size - 1

    def sigma_is_valid(self):
        """True if VGLVLS is strictly decreasing within [0, 1]"""
        lvls = self.VGLVLS
        return bool(
            np.isfinite(lvls).all()
            and ((lvls >= 0) & (lvls <= 1)).all()
            and (np.diff(lvls) < 0).all()
        )

    def check_and_fix(self, onrepair=None):
        """
        Replace invalid metadata with documented defaults:

        * unknown VGTYP becomes 2 (non-hydrostatic sigma-P)
        * VGTOP <= 0 becomes 5000
        * sigma VGLVLS that are not strictly decreasing within [0, 1] become
          synthetic_levels(nlayers)

        Each repair emits a DefensiveRepairWarning and calls
        onrepair(field, old, new) if provided.

        Returns
        -------
        spec : VerticalLevelSpec
            self if nothing was repaired, otherwise a new spec
        """
        vgtyp = self.VGTYP
        vgtop = self.VGTOP
        vglvls = self.VGLVLS
        changed = False
        if vgtyp not in vgtyp_names:
            _warn_repair('VGTYP', vgtyp, DEFAULT_VGTYP, onrepair)
            vgtyp = DEFAULT_VGTYP
            changed = True
        if not vgtop > 0:
            _warn_repair('VGTOP', vgtop, DEFAULT_VGTOP, onrepair)
            vgtop = DEFAULT_VGTOP
            changed = True
        if vgtyp in sigma_types:
            tmp = VerticalLevelSpec(vgtyp, vgtop, vglvls)
            if not tmp.sigma_is_valid():
                newlvls = synthetic_levels(tmp.nlayers)
                _warn_repair(
                    'VGLVLS', vglvls.tolist(), newlvls.tolist(), onrepair
                )
                vglvls = newlvls
                changed = True
        if not changed:
            return self
        return VerticalLevelSpec(vgtyp, vgtop, vglvls)


def _clamp(z):
    return np.clip(z, MINIMUM_ELEVATION, MAXIMUM_ELEVATION)


def level_profile(spec, height=0.):
    """
    Elevation (m above sea level) of each level in spec.

    Arguments
    ---------
    spec : VerticalLevelSpec
        Validated vertical grid description
    height : scalar or array
        Terrain height (m); arrays are broadcast against levels so that the
        result has shape (nlayers + 1,) + height.shape

    Returns
    -------
    z : array
        Level elevations clamped to [-1000, 100000]
    """
    zs = np.asarray(height, dtype='d')
    lvls = spec.VGLVLS.reshape((-1,) + (1,) * zs.ndim)
    vgtyp = spec.VGTYP
    if vgtyp in sigma_pressure_types:
        h0s = R * T0S / G
        s = np.sqrt(1 - (A / (T0S * h0s)) * 2 * zs)
        qstar = lvls + (1 - lvls) * (spec.VGTOP / P00) * np.exp(
            2 * zs / h0s / s
        )
        lnq = np.log(qstar)
        z = zs - h0s * lnq * ((A / (2 * T0S)) * lnq + s)
    elif vgtyp == VGSIGZ3:
        z = zs + (1 - lvls) * np.maximum(spec.VGTOP - zs, 0)
    elif vgtyp == VGPRES3:
        pa = np.clip(lvls, MINIMUM_PRESSURE, MAXIMUM_PRESSURE)
        z = -7200. * np.log(pa / 100. / 1012.5)
    elif vgtyp == VGZVAL3:
        z = lvls
    elif vgtyp == VGHVAL3:
        z = np.clip(lvls, 0, MAXIMUM_ELEVATION) + zs
    else:
        raise InvalidParameter('VGTYP', f'{vgtyp} is not supported')
    z = np.broadcast_to(z, lvls.shape[:1] + zs.shape)
    return _clamp(z)


class TerrainProfileCache:
    """
    Last-height cache of level profiles for scanning cells in order. The
    profile is recomputed only when the terrain height (or spec) differs
    from the previous call. Owned by the caller; reset() per dataset.
    """
    def __init__(self):
        self.reset()

    def reset(self):
        self.spec = None
        self.height = None
        self.profile = None
        self.ncomputed = 0

    def __call__(self, spec, height):
        """
        Arguments
        ---------
        spec : VerticalLevelSpec
        height : float
            Terrain height (m) of one cell

        Returns
        -------
        z : array
            Read-only level elevations (nlayers + 1,)
        """
        height = float(height)
        if (
            self.profile is None or spec is not self.spec
            or height != self.height
        ):
            self.profile = level_profile(spec, height)
            self.profile.flags.writeable = False
            self.spec = spec
            self.height = height
            self.ncomputed += 1
        return self.profile


def level_elevations(spec, heights=None, shape=None, cache=None):
    """
    Arguments
    ---------
    spec : VerticalLevelSpec
        Validated vertical grid description
    heights : array or None
        Terrain height (m) by (ROW, COL). If None, a sea-level profile is
        broadcast to shape.
    shape : tuple or None
        (ROW, COL) used when heights is None; defaults to ()
    cache : TerrainProfileCache or None
        If provided, cells are processed in row-major order through the
        cache; otherwise all cells are computed at once.

    Returns
    -------
    z : array
        Elevation (m) of levels with shape (nlayers + 1,) + heights.shape
    """
    if heights is None:
        shape = () if shape is None else tuple(shape)
        z = level_profile(spec, 0.)
        return np.broadcast_to(
            z.reshape((-1,) + (1,) * len(shape)), z.shape + shape
        ).copy()
    heights = np.asarray(heights, dtype='d')
    if cache is None:
        return level_profile(spec, heights)
    z = np.empty((spec.nlayers + 1,) + heights.shape, dtype='d')
    zview = z.reshape(spec.nlayers + 1, -1)
    for ci, height in enumerate(heights.ravel()):
        zview[:, ci] = cache(spec, height)
    return z


def layer_center_elevations(spec, heights=None, shape=None, cache=None):
    """
    Midpoints of consecutive level elevations; see level_elevations.

    Returns
    -------
    z : array
        Elevation (m) of layer centers with shape (nlayers,) + heights.shape
    """
    z = level_elevations(spec, heights, shape=shape, cache=cache)
    return _clamp(0.5 * (z[:-1] + z[1:]))


def zh_elevations(heights, zh):
    """
    Time-varying layer-center elevation from meteorology.

    Arguments
    ---------
    heights : array
        Terrain height (m) by (ROW, COL) (e.g., GRIDCRO2D HT)
    zh : array
        Mid-layer height above ground (m) by (..., ROW, COL) (e.g.,
        METCRO3D ZH)

    Returns
    -------
    z : array
        heights + zh clamped to [-1000, 100000]
    """
    heights = np.asarray(heights, dtype='d')
    zh = np.asarray(zh, dtype='d')
    if heights.ndim > 0 and zh.shape[-heights.ndim:] != heights.shape:
        raise InvalidParameter(
            'ZH', f'shape {zh.shape} does not end with {heights.shape}'
        )
    return _clamp(heights + zh)
