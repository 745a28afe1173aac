__all__ = [
    'SubsetRequest', 'reduce_subset', 'cell_bounds', 'cell_vertices',
    'cell_overlaps', 'bounds_overlap', 'bounds_subsumes', 'validate_bbox',
    'truncate_span', 'time_window'
]

import numpy as np

from .errors import InvalidParameter, EmptySubset

# Western edge used when a projected cell appears to span the dateline
DATELINE_WEST = -179.999


def validate_bbox(bbox):
    """
    Arguments
    ---------
    bbox : iterable
        (west, south, east, north) in decimal degrees

    Returns
    -------
    bbox : tuple
        floats (west, south, east, north)
    """
    try:
        west, south, east, north = [float(v) for v in bbox]
    except (TypeError, ValueError):
        raise InvalidParameter('bbox', f'{bbox} is not 4 numbers')
    for key, val, lim in [
        ('west', west, 180), ('east', east, 180),
        ('south', south, 90), ('north', north, 90)
    ]:
        if not (-lim <= val <= lim):
            raise InvalidParameter(f'bbox.{key}', f'{val} not in +/-{lim}')
    if west > east:
        raise InvalidParameter('bbox.west', f'{west} > east {east}')
    if south > north:
        raise InvalidParameter('bbox.south', f'{south} > north {north}')
    return (west, south, east, north)


def bounds_overlap(a, b):
    """
    True if the (west, south, east, north) boxes a and b overlap; touching
    edges count as overlap.
    """
    return not (
        a[1] > b[3] or a[3] < b[1] or a[0] > b[2] or a[2] < b[0]
    )


def bounds_subsumes(a, b):
    """
    True if box b is completely inside box a (edges inclusive)
    """
    return (
        a[0] <= b[0] <= a[2] and a[0] <= b[2] <= a[2]
        and a[1] <= b[1] <= a[3] and a[1] <= b[3] <= a[3]
    )


def truncate_span(x):
    """
    If longitudes x span more than 180 degrees, limit the vertices to
    (DATELINE_WEST, west) where west is the smallest longitude, so the cell
    stays west of the dateline instead of wrapping the globe. The result
    spans exactly the range cell_bounds reports.

    This is a heuristic for polar stereographic cells that unproject across
    -180/180. It is not verified for cells that actually contain a pole.
    """
    x = np.asarray(x, dtype='d')
    west = x.min()
    if x.max() - west > 180:
        lo, hi = sorted([DATELINE_WEST, west])
        x = np.clip(np.where(x > 0, DATELINE_WEST, x), lo, hi)
    return x


def cell_vertices(lon, lat, row, col):
    """
    Arguments
    ---------
    lon, lat : array
        Corner coordinates (NROWS + 1, NCOLS + 1)
    row, col : int
        0-based cell indices

    Returns
    -------
    x, y : array
        Four vertices in counter-clockwise order starting at south-west
    """
    rs = [row, row, row + 1, row + 1]
    cs = [col, col + 1, col + 1, col]
    return np.asarray(lon)[rs, cs], np.asarray(lat)[rs, cs]


def cell_bounds(lon, lat, row, col, projected=True):
    """
    Arguments
    ---------
    lon, lat : array
        Corner coordinates (NROWS + 1, NCOLS + 1)
    row, col : int
        0-based cell indices
    projected : bool
        If True, spans over 180 degrees are truncated to
        (DATELINE_WEST, west) as described in truncate_span

    Returns
    -------
    (west, south, east, north)
    """
    x, y = cell_vertices(lon, lat, row, col)
    if projected:
        x = truncate_span(x)
    west = x.min()
    east = x.max()
    return (float(west), float(y.min()), float(east), float(y.max()))


def _bounds_arrays(lon, lat, projected=True):
    lon = np.asarray(lon)
    lat = np.asarray(lat)
    xs = np.stack([lon[:-1, :-1], lon[:-1, 1:], lon[1:, 1:], lon[1:, :-1]])
    ys = np.stack([lat[:-1, :-1], lat[:-1, 1:], lat[1:, 1:], lat[1:, :-1]])
    west = xs.min(0)
    east = xs.max(0)
    if projected:
        wide = (east - west) > 180
        newwest = np.minimum(DATELINE_WEST, west)
        neweast = np.maximum(DATELINE_WEST, west)
        west, east = (
            np.where(wide, newwest, west), np.where(wide, neweast, east)
        )
    return west, ys.min(0), east, ys.max(0)


def _clipped(lon, lat, row, col, bbox, projected):
    from shapely import clip_by_rect
    from shapely.geometry import Polygon
    x, y = cell_vertices(lon, lat, row, col)
    if projected:
        x = truncate_span(x)
    poly = Polygon(np.asarray([x, y]).T)
    return not clip_by_rect(poly, *bbox).is_empty


def cell_overlaps(lon, lat, row, col, bbox, projected=True, clip=False):
    """
    Does 0-based cell (row, col) overlap bbox?

    Arguments
    ---------
    lon, lat : array
        Corner coordinates (NROWS + 1, NCOLS + 1)
    bbox : tuple
        (west, south, east, north)
    clip : bool
        If True and the cell bounds are not completely inside bbox, clip the
        cell polygon by bbox and require a non-empty result.

    Returns
    -------
    overlaps : bool
    """
    cb = cell_bounds(lon, lat, row, col, projected=projected)
    if not bounds_overlap(bbox, cb):
        return False
    if clip and not bounds_subsumes(bbox, cb):
        return _clipped(lon, lat, row, col, bbox, projected)
    return True


def _check_range(rng, n, key):
    if rng is None:
        return (1, n)
    first, last = [int(v) for v in rng]
    if not (1 <= first <= last <= n):
        raise InvalidParameter(
            key, f'({first}, {last}) not within 1-based range (1, {n})'
        )
    return (first, last)


def reduce_subset(
    lon, lat, bbox, rows=None, cols=None, projected=True, clip=False,
    verbose=0
):
    """
    Narrow a row/column window to the rows and columns that have at least one
    cell overlapping bbox.

    Arguments
    ---------
    lon, lat : array
        Corner coordinates (NROWS + 1, NCOLS + 1), see Grid.corners
    bbox : iterable
        (west, south, east, north) in decimal degrees
    rows, cols : tuple or None
        1-based inclusive (first, last). None is the whole dimension.
    projected : bool
        True unless lon/lat come from a lon/lat grid; enables the dateline
        truncation of cell bounds.
    clip : bool
        Use polygon clipping for cells that are only partly inside bbox.
    verbose : int
        Level of verbosity

    Returns
    -------
    rows, cols : tuple
        1-based inclusive (first, last) subranges of the inputs

    Raises EmptySubset if no cell in the window overlaps bbox.
    """
    lon = np.asarray(lon)
    lat = np.asarray(lat)
    if lon.shape != lat.shape or lon.ndim != 2 or min(lon.shape) < 2:
        raise InvalidParameter(
            'corners', f'lon {lon.shape} and lat {lat.shape} are not corners'
        )
    bbox = validate_bbox(bbox)
    nrows = lon.shape[0] - 1
    ncols = lon.shape[1] - 1
    r0, r1 = _check_range(rows, nrows, 'ROW')
    c0, c1 = _check_range(cols, ncols, 'COL')
    west, south, east, north = _bounds_arrays(
        lon[r0 - 1:r1 + 1, c0 - 1:c1 + 1],
        lat[r0 - 1:r1 + 1, c0 - 1:c1 + 1], projected=projected
    )
    coarse = ~(
        (bbox[1] > north) | (bbox[3] < south)
        | (bbox[0] > east) | (bbox[2] < west)
    )
    if clip:
        inside = (
            (west >= bbox[0]) & (east <= bbox[2])
            & (south >= bbox[1]) & (north <= bbox[3])
        )
    hits = {}

    def hit(r, c):
        # r, c are 1-based
        if not coarse[r - r0, c - c0]:
            return False
        if not clip or inside[r - r0, c - c0]:
            return True
        key = (r, c)
        if key not in hits:
            hits[key] = _clipped(lon, lat, r - 1, c - 1, bbox, projected)
        return hits[key]

    def rowhit(r, cs):
        return any(hit(r, c) for c in cs)

    def colhit(c, rs):
        return any(hit(r, c) for r in rs)

    for first_row in range(r0, r1 + 1):
        if rowhit(first_row, range(c0, c1 + 1)):
            break
    else:
        raise EmptySubset(f'No grid cell is within bounds {bbox}')

    last_row = first_row
    for row in range(r1, first_row, -1):
        if rowhit(row, range(c0, c1 + 1)):
            last_row = row
            break

    newrows = range(first_row, last_row + 1)
    for first_col in range(c0, c1 + 1):
        if colhit(first_col, newrows):
            break

    last_col = first_col
    for col in range(c1, first_col, -1):
        if colhit(col, newrows):
            last_col = col
            break

    if verbose > 0:
        print(
            f'subset: bounds = {bbox}, rows = [{first_row} {last_row}],'
            + f' columns = [{first_col} {last_col}]'
        )
    return (first_row, last_row), (first_col, last_col)


def time_window(times, start=None, end=None):
    """
    Arguments
    ---------
    times : array-like
        Timestep datetimes (e.g., ds['TSTEP'])
    start, end : str or datetime or None
        Anything pandas.to_datetime accepts; inclusive. None is unbounded.

    Returns
    -------
    tstep : tuple
        1-based inclusive (first, last) timestep range

    Raises EmptySubset if no timestep is within [start, end].
    """
    import pandas as pd
    times = pd.to_datetime(np.asarray(times))
    keep = np.ones(len(times), dtype='bool')
    if start is not None:
        keep &= times >= pd.to_datetime(start)
    if end is not None:
        keep &= times <= pd.to_datetime(end)
    idx = np.flatnonzero(keep)
    if idx.size == 0:
        raise EmptySubset(f'No timestep is within [{start}, {end}]')
    return (int(idx[0]) + 1, int(idx[-1]) + 1)


class SubsetRequest:
    """
    1-based inclusive index ranges for TSTEP, LAY, ROW and COL and an
    optional (west, south, east, north) bounding box.

    Ranges that are None mean the whole dimension once validated.
    """
    def __init__(self, TSTEP=None, LAY=None, ROW=None, COL=None, bbox=None):
        self.ranges = dict(TSTEP=TSTEP, LAY=LAY, ROW=ROW, COL=COL)
        self.bbox = None if bbox is None else validate_bbox(bbox)

    def __repr__(self):
        rngs = ', '.join(f'{k}={v}' for k, v in self.ranges.items())
        return f'SubsetRequest({rngs}, bbox={self.bbox})'

    def __getitem__(self, key):
        return self.ranges[key]

    def validate(self, sizes):
        """
        Arguments
        ---------
        sizes : mappable
            Dimension sizes (e.g., dict(TSTEP=25, LAY=35, ROW=299, COL=459)
            or ds.sizes)

        Returns
        -------
        req : SubsetRequest
            New request with every range checked and filled in
        """
        ranges = {
            key: _check_range(rng, int(sizes.get(key, 1)), key)
            for key, rng in self.ranges.items()
        }
        return SubsetRequest(bbox=self.bbox, **ranges)

    def narrow(self, grid, clip=False, verbose=0):
        """
        Apply reduce_subset to ROW and COL when a bbox was requested.

        Arguments
        ---------
        grid : cmaqsubset.grid.Grid
            Grid whose corners are used

        Returns
        -------
        req : SubsetRequest
            New request; unchanged ranges if there is no bbox
        """
        rows = _check_range(self['ROW'], grid.NROWS, 'ROW')
        cols = _check_range(self['COL'], grid.NCOLS, 'COL')
        if self.bbox is not None:
            lon, lat = grid.corners()
            rows, cols = reduce_subset(
                lon, lat, self.bbox, rows=rows, cols=cols,
                projected=grid.is_projected, clip=clip, verbose=verbose
            )
        return SubsetRequest(
            TSTEP=self['TSTEP'], LAY=self['LAY'], ROW=rows, COL=cols,
            bbox=self.bbox
        )

    def apply(self, ds, grid=None, clip=False, verbose=0):
        """
        Validate against ds, narrow to bbox (if any), and slice ds.

        Arguments
        ---------
        ds : xarray.Dataset
            IOAPI-like dataset with TSTEP, LAY, ROW, COL dimensions
        grid : cmaqsubset.grid.Grid or None
            Required when bbox is set

        Returns
        -------
        req, subds : SubsetRequest, xarray.Dataset
            The narrowed request and the sliced dataset
        """
        req = self.validate(ds.sizes)
        if req.bbox is not None:
            if grid is None:
                raise InvalidParameter('grid', 'required to subset by bbox')
            if grid.shape != (
                ds.sizes.get('ROW', 1), ds.sizes.get('COL', 1)
            ):
                raise InvalidParameter('grid', f'{grid} does not match ds')
            req = req.narrow(grid, clip=clip, verbose=verbose)
        slices = {k: v for k, v in req.to_slices().items() if k in ds.dims}
        return req, ds.isel(**slices)

    def to_slices(self):
        """
        Returns
        -------
        slices : dict
            0-based slices by dimension for xarray.Dataset.isel; dimensions
            with no range are omitted.
        """
        return {
            key: slice(rng[0] - 1, rng[1])
            for key, rng in self.ranges.items() if rng is not None
        }
