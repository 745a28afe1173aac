import pytest
from .. import subset
from ..errors import InvalidParameter, EmptySubset


def _lonlat_corners(nrows=4, ncols=5, west=-100., south=30.):
    import numpy as np
    lon, lat = np.meshgrid(
        west + np.arange(ncols + 1), south + np.arange(nrows + 1)
    )
    return lon.astype('d'), lat.astype('d')


def test_validate_bbox():
    assert (subset.validate_bbox([-100, 30, -90, 40]) == (-100, 30, -90, 40))
    with pytest.raises(InvalidParameter) as ei:
        subset.validate_bbox((10, 0, 0, 1))
    assert (ei.value.field == 'bbox.west')
    with pytest.raises(InvalidParameter) as ei:
        subset.validate_bbox((0, 0, 1, 91))
    assert (ei.value.field == 'bbox.north')
    with pytest.raises(InvalidParameter):
        subset.validate_bbox((0, 0, 1))


def test_bounds_overlap():
    assert (subset.bounds_overlap((0, 0, 1, 1), (1, 1, 2, 2)))
    assert (not subset.bounds_overlap((0, 0, 1, 1), (1.5, 0, 2, 1)))
    assert (subset.bounds_subsumes((0, 0, 2, 2), (0.5, 0.5, 1, 1)))
    assert (not subset.bounds_subsumes((0, 0, 2, 2), (0.5, 0.5, 3, 1)))


def test_dateline_truncation():
    import numpy as np
    lon = np.array([[179.5, -179.5], [179.5, -179.5]])
    lat = np.array([[0., 0.], [1., 1.]])
    bounds = subset.cell_bounds(lon, lat, 0, 0)
    assert (bounds == (-179.999, 0., -179.5, 1.))
    bounds = subset.cell_bounds(lon, lat, 0, 0, projected=False)
    assert (bounds == (-179.5, 0., 179.5, 1.))
    x = subset.truncate_span([179.5, -179.5, -179.5, 179.5])
    assert (np.allclose(x, [-179.999, -179.5, -179.5, -179.999]))


def test_truncate_span_matches_bounds():
    import numpy as np
    # a wide cell whose negative vertices lie east of its western edge
    lon = np.array([[-179.9, -170.], [179.5, 179.9]])
    lat = np.array([[60., 60.], [61., 61.]])
    west, south, east, north = subset.cell_bounds(lon, lat, 0, 0)
    assert ((west, east) == (-179.999, -179.9))
    x, y = subset.cell_vertices(lon, lat, 0, 0)
    x = subset.truncate_span(x)
    assert (x.min() == west and x.max() == east)
    ws, ss, es, ns = subset._bounds_arrays(lon, lat)
    assert (ws[0, 0] == west and es[0, 0] == east)


def test_reduce_subset():
    lon, lat = _lonlat_corners()
    rows, cols = subset.reduce_subset(
        lon, lat, (-98.5, 31.5, -96.5, 32.5), projected=False
    )
    assert (rows == (2, 3))
    assert (cols == (2, 4))


def test_reduce_subset_fixed_point():
    lon, lat = _lonlat_corners()
    bbox = (-98.5, 31.5, -96.5, 32.5)
    rows, cols = subset.reduce_subset(lon, lat, bbox, projected=False)
    rows2, cols2 = subset.reduce_subset(
        lon, lat, bbox, rows=rows, cols=cols, projected=False
    )
    assert (rows2 == rows and cols2 == cols)
    slon = lon[rows[0] - 1:rows[1] + 1, cols[0] - 1:cols[1] + 1]
    slat = lat[rows[0] - 1:rows[1] + 1, cols[0] - 1:cols[1] + 1]
    rows3, cols3 = subset.reduce_subset(slon, slat, bbox, projected=False)
    assert (rows3 == (1, 2) and cols3 == (1, 3))


def test_reduce_subset_widening():
    lon, lat = _lonlat_corners(nrows=10, ncols=10)
    inner = (-97.5, 32.5, -95.5, 34.5)
    outer = (-98.5, 31.5, -93.5, 36.5)
    rows, cols = subset.reduce_subset(lon, lat, inner, projected=False)
    wrows, wcols = subset.reduce_subset(lon, lat, outer, projected=False)
    assert (wrows[0] <= rows[0] and rows[1] <= wrows[1])
    assert (wcols[0] <= cols[0] and cols[1] <= wcols[1])


def test_reduce_subset_disjoint():
    lon, lat = _lonlat_corners()
    with pytest.raises(EmptySubset):
        subset.reduce_subset(lon, lat, (0, 0, 1, 1), projected=False)
    with pytest.raises(InvalidParameter) as ei:
        subset.reduce_subset(
            lon, lat, (-98.5, 31.5, -96.5, 32.5), rows=(3, 9)
        )
    assert (ei.value.field == 'ROW')


def test_reduce_subset_clip():
    import numpy as np
    # one diamond-shaped cell |lon| + |lat| <= 1
    lon = np.array([[0., 1.], [-1., 0.]])
    lat = np.array([[-1., 0.], [0., 1.]])
    bbox = (0.6, 0.6, 1., 1.)
    rows, cols = subset.reduce_subset(lon, lat, bbox, projected=False)
    assert (rows == (1, 1) and cols == (1, 1))
    assert (subset.cell_overlaps(lon, lat, 0, 0, bbox, projected=False))
    assert (not subset.cell_overlaps(
        lon, lat, 0, 0, bbox, projected=False, clip=True
    ))
    with pytest.raises(EmptySubset):
        subset.reduce_subset(lon, lat, bbox, projected=False, clip=True)
    rows, cols = subset.reduce_subset(
        lon, lat, (0.2, 0.2, 1., 1.), projected=False, clip=True
    )
    assert (rows == (1, 1) and cols == (1, 1))


def test_time_window():
    import pandas as pd
    times = pd.date_range('2019-07-24T00', periods=25, freq='h')
    assert (subset.time_window(times) == (1, 25))
    tstep = subset.time_window(times, '2019-07-24T05', '2019-07-24T07')
    assert (tstep == (6, 8))
    assert (subset.time_window(times, '2019-07-25T00') == (25, 25))
    with pytest.raises(EmptySubset):
        subset.time_window(times, '2019-07-26')


def test_subset_request():
    req = subset.SubsetRequest(LAY=(1, 1), ROW=(2, 3))
    assert (req.to_slices() == dict(LAY=slice(0, 1), ROW=slice(1, 3)))
    vreq = req.validate(dict(TSTEP=25, LAY=35, ROW=4, COL=5))
    assert (vreq['TSTEP'] == (1, 25))
    assert (vreq['COL'] == (1, 5))
    assert (vreq['ROW'] == (2, 3))
    with pytest.raises(InvalidParameter) as ei:
        req.validate(dict(TSTEP=25, LAY=35, ROW=2, COL=5))
    assert (ei.value.field == 'ROW')
    with pytest.raises(InvalidParameter):
        subset.SubsetRequest(bbox=(10, 0, 0, 1))


def test_subset_request_narrow():
    from ..grid import Grid
    attrs = dict(
        GDTYP=1, P_ALP=0., P_BET=0., P_GAM=0., XCENT=0., YCENT=0.,
        XORIG=-100., YORIG=30., XCELL=1., YCELL=1., NCOLS=5, NROWS=4
    )
    g = Grid.from_attrs(attrs)
    req = subset.SubsetRequest(LAY=(1, 1), bbox=(-98.5, 31.5, -96.5, 32.5))
    nreq = req.narrow(g)
    assert (nreq['ROW'] == (2, 3) and nreq['COL'] == (2, 4))
    assert (nreq['LAY'] == (1, 1) and nreq['TSTEP'] is None)
    nreq = subset.SubsetRequest(ROW=(1, 2)).narrow(g)
    assert (nreq['ROW'] == (1, 2) and nreq['COL'] == (1, 5))
