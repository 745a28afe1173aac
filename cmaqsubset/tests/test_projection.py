import pytest
from .. import projection
from ..errors import InvalidParameter, ProjectionFailure


def _lambert(**kwds):
    return projection.Lambert(
        lower_latitude=33, upper_latitude=45, central_longitude=-97,
        central_latitude=40, **kwds
    )


def test_lonlat_identity():
    p = projection.LonLat()
    assert (p.project(-97.5, 40.25) == (-97.5, 40.25))
    assert (p.unproject(-97.5, 40.25) == (-97.5, 40.25))


def test_lambert_roundtrip():
    import numpy as np
    p = _lambert()
    x, y = p.project(-97, 40)
    assert (np.allclose((x, y), (0, 0), atol=1e-6))
    lon = np.linspace(-130, -60, 8)
    lat = np.linspace(20, 55, 8)
    X, Y = p.project(lon, lat)
    olon, olat = p.unproject(X, Y)
    assert (np.allclose(olon, lon, atol=1e-8))
    assert (np.allclose(olat, lat, atol=1e-8))


def test_other_roundtrips():
    import numpy as np
    projectors = [
        projection.Albers(
            lower_latitude=29.5, upper_latitude=45.5, central_longitude=-96,
            central_latitude=23
        ),
        projection.Stereographic(
            central_longitude=-98, central_latitude=90, secant_latitude=45
        ),
        projection.Mercator(central_longitude=-90),
    ]
    for p in projectors:
        x, y = p.project(-100., 50.)
        lon, lat = p.unproject(x, y)
        assert (np.allclose((lon, lat), (-100., 50.), atol=1e-8))


def test_ellipsoid_roundtrip():
    import numpy as np
    p = _lambert(major_semiaxis=6378137., minor_semiaxis=6356752.314)
    lon, lat = p.unproject(*p.project(-80., 35.))
    assert (np.allclose((lon, lat), (-80., 35.), atol=1e-8))


def test_invalid_parameters():
    with pytest.raises(InvalidParameter) as ei:
        _lambert(major_semiaxis=1e6)
    assert (ei.value.field == 'major_semiaxis')
    with pytest.raises(InvalidParameter) as ei:
        _lambert(major_semiaxis=6370000., minor_semiaxis=6380000.)
    assert (ei.value.field == 'minor_semiaxis')
    with pytest.raises(InvalidParameter) as ei:
        projection.Lambert(
            lower_latitude=45, upper_latitude=33, central_longitude=-97,
            central_latitude=40
        )
    assert (ei.value.field == 'lower_latitude')
    with pytest.raises(InvalidParameter) as ei:
        projection.Lambert(
            lower_latitude=-33, upper_latitude=45, central_longitude=-97,
            central_latitude=40
        )
    assert (ei.value.field == 'upper_latitude')
    with pytest.raises(InvalidParameter) as ei:
        projection.Stereographic(
            central_longitude=-98, central_latitude=45, secant_latitude=45
        )
    assert (ei.value.field == 'central_latitude')
    with pytest.raises(InvalidParameter):
        _lambert().project(-200, 40)


def test_mercator_pole():
    p = projection.Mercator(central_longitude=0)
    with pytest.raises(ProjectionFailure):
        p.project(0., 90.)


def test_get_projector():
    attrs = dict(
        GDTYP=2, P_ALP=33., P_BET=45., P_GAM=-97., XCENT=-97., YCENT=40.
    )
    p = projection.get_projector(attrs)
    assert (isinstance(p, projection.Lambert))
    assert (p.major_semiaxis == 6370000.)
    assert ('+proj=lcc' in p.proj4string)
    attrs['earth_radius'] = 6371000.
    p = projection.get_projector(attrs)
    assert (p.major_semiaxis == 6371000.)
    p = projection.get_projector(attrs, ellipsoid=(6378137., 6356752.314))
    assert (p.minor_semiaxis == 6356752.314)
    attrs['GDTYP'] = 3
    with pytest.raises(InvalidParameter) as ei:
        projection.get_projector(attrs)
    assert (ei.value.field == 'GDTYP')
