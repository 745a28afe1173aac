__all__ = ['Grid']

import numpy as np

from .errors import InvalidParameter, ProjectionFailure
from .projection import get_projector, LonLat


class Grid:
    """
    Regular IOAPI grid: NROWS x NCOLS cells of XCELL x YCELL projected units
    starting at XORIG, YORIG (the south-west corner of the first cell).

    Corner and center longitude/latitude are computed once and then reused;
    the returned arrays are read-only.
    """
    def __init__(
        self, NROWS, NCOLS, XORIG, YORIG, XCELL, YCELL, projector,
        GDNAM='unknown'
    ):
        self.NROWS = int(NROWS)
        self.NCOLS = int(NCOLS)
        self.XORIG = float(XORIG)
        self.YORIG = float(YORIG)
        self.XCELL = float(XCELL)
        self.YCELL = float(YCELL)
        self.GDNAM = GDNAM
        self.projector = projector
        for key in ['NROWS', 'NCOLS', 'XCELL', 'YCELL']:
            val = getattr(self, key)
            if not val > 0:
                raise InvalidParameter(key, f'{val} must be positive')
        for key in ['XORIG', 'YORIG']:
            if not np.isfinite(getattr(self, key)):
                raise InvalidParameter(key, 'must be finite')

    @classmethod
    def from_attrs(cls, attrs, ellipsoid=None):
        """
        Arguments
        ---------
        attrs : dict
            IOAPI attributes (NROWS, NCOLS, XORIG, YORIG, XCELL, YCELL, GDTYP,
            P_ALP, P_BET, P_GAM, XCENT, YCENT, optionally GDNAM)
        ellipsoid : tuple or None
            (major, minor) semiaxes in meters; see projection.get_projector

        Returns
        -------
        grid : Grid
        """
        missing = [
            k for k in ['NROWS', 'NCOLS', 'XORIG', 'YORIG', 'XCELL', 'YCELL']
            if k not in attrs
        ]
        if len(missing) > 0:
            raise InvalidParameter(missing[0], 'missing grid attribute')
        projector = get_projector(attrs, ellipsoid=ellipsoid)
        gdnam = attrs.get('GDNAM', 'unknown')
        if isinstance(gdnam, bytes):
            gdnam = gdnam.decode()
        return cls(
            attrs['NROWS'], attrs['NCOLS'], attrs['XORIG'], attrs['YORIG'],
            attrs['XCELL'], attrs['YCELL'], projector,
            GDNAM=str(gdnam).strip()
        )

    def __repr__(self):
        return (
            f'Grid({self.GDNAM}, {self.NROWS}x{self.NCOLS},'
            + f' {self.projector!r})'
        )

    @property
    def shape(self):
        return (self.NROWS, self.NCOLS)

    @property
    def is_projected(self):
        return not isinstance(self.projector, LonLat)

    def _unproject(self, xs, ys):
        X, Y = np.meshgrid(xs, ys)
        lon, lat = self.projector.unproject(X, Y)
        lon.flags.writeable = False
        lat.flags.writeable = False
        return lon, lat

    def corners(self):
        """
        Longitude and latitude of every cell corner.

        Returns
        -------
        lon, lat : array
            Shape (NROWS + 1, NCOLS + 1); lon[r, c] is the south-west corner of
            cell (r, c) and lon[r + 1, c + 1] is its north-east corner.
        """
        if not hasattr(self, '_corners'):
            xs = self.XORIG + np.arange(self.NCOLS + 1) * self.XCELL
            ys = self.YORIG + np.arange(self.NROWS + 1) * self.YCELL
            lon, lat = self._unproject(xs, ys)
            for r, c in [(0, 0), (-1, -1)]:
                if not (
                    -180 <= lon[r, c] <= 180 and -90 <= lat[r, c] <= 90
                ):
                    raise ProjectionFailure(
                        f'corner ({r}, {c}) is invalid:'
                        + f' ({lon[r, c]}, {lat[r, c]})'
                    )
            self._corners = lon, lat
        return self._corners

    def centers(self):
        """
        Longitude and latitude of every cell center, shape (NROWS, NCOLS)
        """
        if not hasattr(self, '_centers'):
            xs = self.XORIG + (np.arange(self.NCOLS) + 0.5) * self.XCELL
            ys = self.YORIG + (np.arange(self.NROWS) + 0.5) * self.YCELL
            self._centers = self._unproject(xs, ys)
        return self._centers

    def exterior_bbox(self):
        """
        Returns
        -------
        (west, south, east, north)
            Longitude/latitude envelope of all corners
        """
        lon, lat = self.corners()
        return (lon.min(), lat.min(), lon.max(), lat.max())

    @property
    def geodf(self):
        """
        geopandas.GeoDataFrame of longitude/latitude cell polygons indexed by
        ROW and COL cell centers (0.5, 1.5, ...). Cells whose longitudes span
        more than 180 degrees are truncated to the west of the dateline.
        """
        if not hasattr(self, '_geodf'):
            import pandas as pd
            import geopandas as gpd
            from shapely.geometry import Polygon
            from .subset import cell_vertices, truncate_span

            lon, lat = self.corners()
            rows = np.arange(self.NROWS) + 0.5
            cols = np.arange(self.NCOLS) + 0.5
            midx = pd.MultiIndex.from_product([rows, cols])
            midx.names = 'ROW', 'COL'
            geoms = []
            for r in range(self.NROWS):
                for c in range(self.NCOLS):
                    x, y = cell_vertices(lon, lat, r, c)
                    if self.is_projected:
                        x = truncate_span(x)
                    geoms.append(Polygon(np.asarray([x, y]).T))
            self._geodf = gpd.GeoDataFrame(
                geometry=geoms, index=midx, crs=4326
            )
        return self._geodf
