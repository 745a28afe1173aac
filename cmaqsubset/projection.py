__all__ = [
    'Projector', 'LonLat', 'Lambert', 'Albers', 'Stereographic', 'Mercator',
    'get_projector', 'default_semiaxes', 'projector_classes'
]

import os
import numpy as np

from .errors import InvalidParameter, ProjectionFailure

# IOAPI GDTYP codes
LATGRD3 = 1
LAMGRD3 = 2
POLGRD3 = 6
EQMGRD3 = 7
ALBGRD3 = 9

MINIMUM_SEMIAXIS = 6.0e6
MAXIMUM_SEMIAXIS = 7.0e6
# unproject(x, y) must project back onto (x, y) within this fraction of the
# major semiaxis
PROJECTION_TOLERANCE = 1e-10


def default_semiaxes(attrs=None):
    """
    Return (major, minor) semiaxes. Uses attrs['earth_radius'] if available,
    otherwise the IOAPI_ISPH environment variable (default 6370000., the IOAPI
    sphere).
    """
    if attrs is None:
        attrs = {}
    ENV_IOAPI_ISPH = os.environ.get('IOAPI_ISPH', '6370000.')
    R = float(attrs.get('earth_radius', ENV_IOAPI_ISPH))
    return R, R


def _check_longitude(value, field):
    if not (-180 <= value <= 180):
        raise InvalidParameter(field, f'{value} not in [-180, 180]')


def _check_latitude(value, field):
    if not (-90 <= value <= 90):
        raise InvalidParameter(field, f'{value} not in [-90, 90]')


def _check_parallel(value, field):
    _check_latitude(value, field)
    if not (1 <= abs(value) <= 89):
        raise InvalidParameter(field, f'{value} not within +/-[1, 89]')


class Projector:
    """
    Maps longitude/latitude (degrees) to and from a projected plane (meters).

    Subclasses define the parameters of one projection variant, how those
    parameters are validated, and the PROJ definition that implements the
    mapping. The PROJ object is built once, when the projector is created.
    """
    gdtyp = None
    name = 'unknown'

    def __init__(
        self, major_semiaxis=None, minor_semiaxis=None, false_easting=0.,
        false_northing=0.
    ):
        dmajor, dminor = default_semiaxes()
        if major_semiaxis is None:
            major_semiaxis = dmajor
        if minor_semiaxis is None:
            minor_semiaxis = major_semiaxis
        self.major_semiaxis = float(major_semiaxis)
        self.minor_semiaxis = float(minor_semiaxis)
        self.false_easting = float(false_easting)
        self.false_northing = float(false_northing)
        self.validate_parameters()
        self._proj = self._make_proj()

    def __repr__(self):
        return f'{type(self).__name__}({self.proj4string})'

    def validate_parameters(self):
        """
        Raise InvalidParameter if the ellipsoid or any projection parameter
        is invalid.
        """
        a = self.major_semiaxis
        b = self.minor_semiaxis
        for key, val in [('major_semiaxis', a), ('minor_semiaxis', b)]:
            if not (MINIMUM_SEMIAXIS <= val <= MAXIMUM_SEMIAXIS):
                raise InvalidParameter(
                    key,
                    f'{val} not in [{MINIMUM_SEMIAXIS}, {MAXIMUM_SEMIAXIS}]'
                )
        if b > a:
            raise InvalidParameter(
                'minor_semiaxis', f'{b} exceeds major_semiaxis {a}'
            )
        for key in ['false_easting', 'false_northing']:
            if not np.isfinite(getattr(self, key)):
                raise InvalidParameter(key, 'must be finite')

    @property
    def proj4string(self):
        raise NotImplementedError

    def _ellps(self):
        return f'+a={self.major_semiaxis} +b={self.minor_semiaxis}'

    def _make_proj(self):
        import pyproj
        return pyproj.Proj(self.proj4string)

    @property
    def proj(self):
        return self._proj

    def project(self, lon, lat):
        """
        Arguments
        ---------
        lon, lat : scalar or array-like
            Decimal degrees East and North

        Returns
        -------
        x, y : scalar or array
            Projected coordinates in meters
        """
        from pyproj.exceptions import ProjError
        scalar = np.ndim(lon) == 0 and np.ndim(lat) == 0
        lon = np.asarray(lon, dtype='d')
        lat = np.asarray(lat, dtype='d')
        if not ((lon >= -180) & (lon <= 180)).all():
            raise InvalidParameter('longitude', 'values not in [-180, 180]')
        if not ((lat >= -90) & (lat <= 90)).all():
            raise InvalidParameter('latitude', 'values not in [-90, 90]')
        try:
            x, y = self._forward(lon, lat)
        except ProjError as e:
            raise ProjectionFailure(f'{self.name} project failed: {e}')
        x = np.asarray(x, dtype='d')
        y = np.asarray(y, dtype='d')
        if not (np.isfinite(x).all() and np.isfinite(y).all()):
            raise ProjectionFailure(f'{self.name} project is not finite')
        if scalar:
            return float(x), float(y)
        return x, y

    def unproject(self, x, y):
        """
        Arguments
        ---------
        x, y : scalar or array-like
            Projected coordinates in meters

        Returns
        -------
        lon, lat : scalar or array
            Decimal degrees East and North

        Raises ProjectionFailure if any point cannot be unprojected to a valid
        longitude/latitude that projects back onto x, y.
        """
        from pyproj.exceptions import ProjError
        scalar = np.ndim(x) == 0 and np.ndim(y) == 0
        x = np.asarray(x, dtype='d')
        y = np.asarray(y, dtype='d')
        try:
            lon, lat = self._inverse(x, y)
        except ProjError as e:
            raise ProjectionFailure(f'{self.name} unproject failed: {e}')
        lon = np.asarray(lon, dtype='d')
        lat = np.asarray(lat, dtype='d')
        if not (np.isfinite(lon).all() and np.isfinite(lat).all()):
            raise ProjectionFailure(
                f'{self.name} unproject did not converge'
            )
        if not (
            ((lon >= -180) & (lon <= 180)).all()
            and ((lat >= -90) & (lat <= 90)).all()
        ):
            raise ProjectionFailure(
                f'{self.name} unproject is outside [-180, 180]x[-90, 90]'
            )
        self._check_roundtrip(x, y, lon, lat)
        if scalar:
            return float(lon), float(lat)
        return lon, lat

    def _forward(self, lon, lat):
        return self.proj(lon, lat, errcheck=True)

    def _inverse(self, x, y):
        return self.proj(x, y, inverse=True, errcheck=True)

    def _check_roundtrip(self, x, y, lon, lat):
        from pyproj.exceptions import ProjError
        if x.size == 0:
            return
        try:
            xr, yr = self._forward(lon, lat)
        except ProjError as e:
            raise ProjectionFailure(f'{self.name} unproject failed: {e}')
        scale = max(self.major_semiaxis, np.abs(x).max(), np.abs(y).max())
        err = np.hypot(np.asarray(xr) - x, np.asarray(yr) - y) / scale
        if not (err <= PROJECTION_TOLERANCE).all():
            raise ProjectionFailure(
                f'{self.name} unproject did not converge (relative residual'
                + f' {np.nanmax(err):.3g})'
            )


class LonLat(Projector):
    """Identity: x, y are longitude, latitude."""
    gdtyp = LATGRD3
    name = 'lonlat'

    @property
    def proj4string(self):
        return f'+proj=lonlat {self._ellps()} +no_defs'

    def _make_proj(self):
        return None

    def _forward(self, lon, lat):
        return lon, lat

    def _inverse(self, x, y):
        return x, y

    def _check_roundtrip(self, x, y, lon, lat):
        pass


class _Conic(Projector):
    def __init__(
        self, lower_latitude, upper_latitude, central_longitude,
        central_latitude, major_semiaxis=None, minor_semiaxis=None,
        false_easting=0., false_northing=0.
    ):
        self.lower_latitude = float(lower_latitude)
        self.upper_latitude = float(upper_latitude)
        self.central_longitude = float(central_longitude)
        self.central_latitude = float(central_latitude)
        super().__init__(
            major_semiaxis, minor_semiaxis, false_easting, false_northing
        )

    def validate_parameters(self):
        super().validate_parameters()
        lo = self.lower_latitude
        up = self.upper_latitude
        _check_parallel(lo, 'lower_latitude')
        _check_parallel(up, 'upper_latitude')
        if np.sign(lo) != np.sign(up):
            raise InvalidParameter(
                'upper_latitude',
                f'{up} is not in the same hemisphere as lower_latitude {lo}'
            )
        if lo > up:
            raise InvalidParameter(
                'lower_latitude', f'{lo} exceeds upper_latitude {up}'
            )
        _check_longitude(self.central_longitude, 'central_longitude')
        if not (-89 <= self.central_latitude <= 89):
            raise InvalidParameter(
                'central_latitude', f'{self.central_latitude} not in [-89, 89]'
            )

    @property
    def proj4string(self):
        return (
            f'+proj={self._projname} +lat_1={self.lower_latitude}'
            + f' +lat_2={self.upper_latitude} +lat_0={self.central_latitude}'
            + f' +lon_0={self.central_longitude} +x_0={self.false_easting}'
            + f' +y_0={self.false_northing} {self._ellps()} +units=m +no_defs'
        )


class Lambert(_Conic):
    """Lambert conformal conic (IOAPI LAMGRD3)"""
    gdtyp = LAMGRD3
    name = 'lambert'
    _projname = 'lcc'


class Albers(_Conic):
    """Albers equal-area conic (IOAPI ALBGRD3)"""
    gdtyp = ALBGRD3
    name = 'albers'
    _projname = 'aea'


class Stereographic(Projector):
    """Polar stereographic (IOAPI POLGRD3)"""
    gdtyp = POLGRD3
    name = 'stereographic'

    def __init__(
        self, central_longitude, central_latitude, secant_latitude,
        major_semiaxis=None, minor_semiaxis=None, false_easting=0.,
        false_northing=0.
    ):
        self.central_longitude = float(central_longitude)
        self.central_latitude = float(central_latitude)
        self.secant_latitude = float(secant_latitude)
        super().__init__(
            major_semiaxis, minor_semiaxis, false_easting, false_northing
        )

    def validate_parameters(self):
        super().validate_parameters()
        _check_longitude(self.central_longitude, 'central_longitude')
        if abs(self.central_latitude) != 90:
            raise InvalidParameter(
                'central_latitude',
                f'{self.central_latitude} must be 90 or -90 for polar'
                + ' stereographic'
            )
        _check_latitude(self.secant_latitude, 'secant_latitude')

    @property
    def proj4string(self):
        return (
            f'+proj=stere +lat_0={self.central_latitude}'
            + f' +lat_ts={self.secant_latitude}'
            + f' +lon_0={self.central_longitude} +x_0={self.false_easting}'
            + f' +y_0={self.false_northing} {self._ellps()} +units=m +no_defs'
        )


class Mercator(Projector):
    """Equatorial Mercator (IOAPI EQMGRD3)"""
    gdtyp = EQMGRD3
    name = 'mercator'

    def __init__(
        self, central_longitude, major_semiaxis=None, minor_semiaxis=None,
        false_easting=0., false_northing=0.
    ):
        self.central_longitude = float(central_longitude)
        super().__init__(
            major_semiaxis, minor_semiaxis, false_easting, false_northing
        )

    def validate_parameters(self):
        super().validate_parameters()
        _check_longitude(self.central_longitude, 'central_longitude')

    @property
    def proj4string(self):
        return (
            f'+proj=merc +lat_ts=0 +lon_0={self.central_longitude}'
            + f' +x_0={self.false_easting} +y_0={self.false_northing}'
            + f' {self._ellps()} +units=m +no_defs'
        )


projector_classes = {
    LATGRD3: LonLat,
    LAMGRD3: Lambert,
    POLGRD3: Stereographic,
    EQMGRD3: Mercator,
    ALBGRD3: Albers,
}


def get_projector(
    attrs, ellipsoid=None, false_easting=0., false_northing=0.
):
    """
    Create the projector for IOAPI grid attributes. The variant is resolved
    once here so that callers reuse one projector for every point.

    Arguments
    ---------
    attrs : dict
        IOAPI attributes GDTYP, P_ALP, P_BET, P_GAM, XCENT, YCENT and,
        optionally, earth_radius
    ellipsoid : tuple or None
        (major, minor) semiaxes in meters. Defaults to default_semiaxes(attrs)
    false_easting, false_northing : float
        Added to projected x and y (meters)

    Returns
    -------
    projector : Projector
    """
    if ellipsoid is None:
        ellipsoid = default_semiaxes(attrs)
    major, minor = ellipsoid
    gdtyp = int(attrs['GDTYP'])
    if gdtyp not in projector_classes:
        raise InvalidParameter(
            'GDTYP',
            f'unsupported projection {gdtyp}; currently support lonlat (1),'
            + ' lcc (2), polar stereographic (6), equatorial mercator (7),'
            + ' albers (9)'
        )
    ellkw = dict(
        major_semiaxis=major, minor_semiaxis=minor,
        false_easting=false_easting, false_northing=false_northing
    )
    if gdtyp == LATGRD3:
        return LonLat(**ellkw)
    elif gdtyp in (LAMGRD3, ALBGRD3):
        return projector_classes[gdtyp](
            lower_latitude=attrs['P_ALP'], upper_latitude=attrs['P_BET'],
            central_longitude=attrs['P_GAM'],
            central_latitude=attrs['YCENT'], **ellkw
        )
    elif gdtyp == POLGRD3:
        return Stereographic(
            central_longitude=attrs['P_GAM'],
            central_latitude=np.sign(attrs['P_ALP']) * 90,
            secant_latitude=attrs['P_BET'], **ellkw
        )
    else:
        return Mercator(central_longitude=attrs['XCENT'], **ellkw)
