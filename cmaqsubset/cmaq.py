__all__ = [
    'open_griddesc', 'open_ioapi', 'griddesc', 'griddesc_from_attrs',
    'get_proj4string'
]

import xarray as xr

# Avogadro's number (molecules/mol)
AVOGADRO = 6.022140857e23

default_griddesc_txt = b"""' '
'LATLON'
  1  0.0 0.0 0.0 0.0 0.0
'POLSTE_HEMI'
  6         1.000        45.000       -98.000       -98.000        90.000
'LamCon_40N_97W'
  2        33.000        45.000       -97.000       -97.000        40.000
'LamCon_25N_95W'
  2        25.000        25.000       -95.000       -95.000        25.000
' '
'US_1deg'
'LATLON'              -140.00        20.0      1.0      1.0   90   40 1
'US_0pt1deg'
'LATLON'              -140.00        20.0      0.1      0.1  900  400 1
'global_1deg'
'LATLON'              -180.00       -90.0      1.0      1.0  360  180 1
'global_0pt1deg'
'LATLON'              -180.00       -90.0      0.1      0.1 3600 1800 1
'108NHEMI2'
'POLSTE_HEMI'     -10098000.0 -10098000.0 108000.0 108000.0  187  187 1
'324NHEMI2'
'POLSTE_HEMI'     -10098000.0 -10098000.0 324000.0 324000.0   63   63 1
'1188NHEMI2'
'POLSTE_HEMI'     -10098000.0 -10098000.0 1188000. 1188000.   17   17 1
'972US1'
'LamCon_40N_97W'   -2556000.0  -1728000.0 972000.0 972000.0   6    4 1
'324US1'
'LamCon_40N_97W'   -2556000.0  -1728000.0 324000.0 324000.0   17   12 1
'108US1'
'LamCon_40N_97W'   -2556000.0  -1728000.0 108000.0 108000.0   51   34 1
'36US1'
'LamCon_40N_97W'   -2556000.0  -1728000.0  36000.0  36000.0  153  100 1
'12US1'
'LamCon_40N_97W'   -2556000.0  -1728000.0  12000.0  12000.0  459  299 1
'4US1'
'LamCon_40N_97W'   -2556000.0  -1728000.0   4000.0   4000.0 1377  897 1
'1US1'
'LamCon_40N_97W'   -2556000.0  -1728000.0   1000.0   1000.0 5508 3588 1
'12US2'
'LamCon_40N_97W'   -2412000.0  -1620000.0  12000.0  12000.0  396  246 1
'4US2'
'LamCon_40N_97W'   -2412000.0  -1620000.0   4000.0   4000.0 1188  738 1
'36US3'
'LamCon_40N_97W'   -2952000.0  -2772000.0  36000.0  36000.0  172  148 1
'12US3'
'LamCon_40N_97W'   -2952000.0  -2772000.0  12000.0  12000.0  516  444 1
'108US3'
'LamCon_40N_97W'   -2952000.0  -2772000.0 108000.0 108000.0   60   50 1
'NAQFC_CONUS'
'LamCon_25N_95W' -4226153.11044303 -834746.472325356 5079.0 5079.0  1473 1025 1
' '"""


def griddesc(griddesc_txt):
    """
    Parse GRIDDESC text into grid definitions.

    Arguments
    ---------
    griddesc_txt : str
        Contents of a GRIDDESC file

    Returns
    -------
    gddefns : OrderedDict
        IOAPI attributes by GDNAM (projection attributes included)
    """
    from collections import OrderedDict
    gddefns = OrderedDict()
    prjdefns = OrderedDict()
    # lines with ' ' are separators
    reallines = [
        l for l in griddesc_txt.split('\n')
        if l.strip() not in ("''", "' '", '')
    ]
    # Definitions are pairs of lines: a quoted name and either numeric
    # projection parameters or a quoted projection name with grid parameters
    prjattrkeys = ['GDTYP', 'P_ALP', 'P_BET', 'P_GAM', 'XCENT', 'YCENT']
    gdattrkeys = [
        'PRJNAME', 'XORIG', 'YORIG', 'XCELL', 'YCELL', 'NCOLS', 'NROWS',
        'NTHIK'
    ]
    for name, defn in zip(reallines[0:-1:2], reallines[1::2]):
        name = name.strip().strip("'").strip()
        values = defn.split()
        if "'" in defn:
            gddefn = dict(zip(gdattrkeys, values))
            gddefn['PRJNAME'] = gddefn['PRJNAME'].strip("'")
            gddefn['GDNAM'] = name
            for key in ['XORIG', 'YORIG', 'XCELL', 'YCELL']:
                gddefn[key] = float(gddefn[key])
            for key in ['NCOLS', 'NROWS', 'NTHIK']:
                gddefn[key] = int(gddefn[key])
            gddefns[name] = gddefn
        else:
            prjdefn = dict(zip(prjattrkeys, values))
            prjdefn['PRJNAME'] = name
            prjdefn['GDTYP'] = int(prjdefn['GDTYP'])
            for key in prjattrkeys[1:]:
                prjdefn[key] = float(prjdefn[key])
            prjdefns[name] = prjdefn
    for name, defn in gddefns.items():
        if defn['PRJNAME'] not in prjdefns:
            raise KeyError(f'{name} uses undefined {defn["PRJNAME"]}')
        defn.update(prjdefns[defn['PRJNAME']])
    return gddefns


def griddesc_from_attrs(attrs):
    """
    Create an xarray Dataset that defines a CMAQ grid using attributes
    supplied by the user. A minimum number of attributes is required:
    GDTYP, P_ALP, P_BET, P_GAM, XCENT, YCENT
    GDNAM, NCOLS, NROWS, XCELL, YCELL, XORIG, YORIG, NTHIK

    For attribute definitions, see https://www.cmascenter.org/ioapi/
    documentation/all_versions/html/GRIDS.html.

    Arguments
    ---------
    attrs : dict
        IOAPI attritbutes (e.g, attrs=dict(NCOLS=3, NROWS=2, ...))

    Returns
    ---------
    gf : xarray.Dataset
        File with ROW/COL coordinates and attrs
    """
    import numpy as np
    attrs = dict(attrs)
    crs = get_proj4string(attrs)
    if crs is not None:
        attrs['crs'] = crs
    outf = xr.Dataset(
        data_vars=dict(),
        coords=dict(
            ROW=np.arange(attrs['NROWS']) + 0.5,
            COL=np.arange(attrs['NCOLS']) + 0.5,
        ), attrs=attrs
    )
    return outf


def open_griddesc(GDNAM, gdpath=None):
    """
    Create an xarray Dataset that defines a CMAQ grid using GRIDDESC

    Arguments
    ---------
    GDNAM: str
        Name of grid as defined in GRIDDESC file
    gdpath : str
        Path to GRIDDESC file. If None (default), use contents of
        default_griddesc_txt instead. If gdpath is not a path, it is treated
        as GRIDDESC contents.

    Returns
    ---------
    gf : xarray.Dataset
        File with coordinates based on GDNAM in gdpath
    """
    import os
    if gdpath is None:
        griddesc_txt = default_griddesc_txt.decode()
    else:
        if os.path.exists(gdpath):
            with open(gdpath) as gdfile:
                griddesc_txt = gdfile.read()
        else:
            griddesc_txt = gdpath

    gdattrs = griddesc(griddesc_txt)
    if GDNAM not in gdattrs:
        raise KeyError(f'{GDNAM} not in {list(gdattrs)}')
    return griddesc_from_attrs(gdattrs[GDNAM])


def get_proj4string(attrs):
    """
    Return a proj4 string from IOAPI attributes where x and y are in grid
    cell units from the lower left corner (i.e., COL and ROW), or None if
    the GDTYP is not supported.

    The file can have earth_radius to explicitly set the radius of the
    earth; otherwise the IOAPI_ISPH environment variable or 6370000 is used.

    For attribute definitions, see https://www.cmascenter.org/ioapi/
    documentation/all_versions/html/GRIDS.html.
    """
    from .projection import get_projector, projector_classes, LATGRD3

    gdtyp = int(attrs['GDTYP'])
    if gdtyp not in projector_classes:
        return None
    if gdtyp == LATGRD3:
        return get_projector(attrs).proj4string
    projector = get_projector(
        attrs, false_easting=-attrs['XORIG'], false_northing=-attrs['YORIG']
    )
    return projector.proj4string.replace(
        '+units=m', f'+to_meter={attrs["XCELL"]}'
    )


def open_ioapi(path, **kwargs):
    """
    Open an IOAPI file in NetCDF format using xarray and construct coordinate
    variables. (time based on TFLAG or properties, ROW/COL in projected space,
    and LAY based on VGLVLS)

    Arguments
    ---------
    path : str
        Path to the IOAPI file in NetCDF format
    kwargs : mappable
        Passed to xr.open_dataset(path, **kwargs)

    Returns
    ---------
    qf : xarray.Dataset
        File with data and coordinates based on path
    """
    qf = xr.open_dataset(path, **kwargs)
    qf.cms.add_coords(inplace=True)

    return qf


def _surface(var, name):
    """Return (ROW, COL) values of a surface variable like HT"""
    import numpy as np
    from .errors import InvalidParameter
    if isinstance(var, xr.DataArray):
        for dim in ['TSTEP', 'LAY']:
            if dim in var.dims:
                var = var.isel(**{dim: 0})
        var = var.transpose('ROW', 'COL').values
    var = np.asarray(var, dtype='d')
    if var.ndim != 2:
        raise InvalidParameter(name, f'must be (ROW, COL); got {var.shape}')
    return var


def _ioattrs(key, units, desc):
    return dict(
        long_name=key.ljust(16), var_desc=desc.ljust(80),
        units=units.ljust(16)
    )


@xr.register_dataset_accessor("cms")
class CmaqSubsetAccessor:
    def __init__(self, xarray_obj):
        self._obj = xarray_obj

    def add_coords(self, inplace=True):
        """
        Add TSTEP, LAY, ROW, and COL coordinates based file.
        """
        import pandas as pd
        import warnings
        import numpy as np
        from datetime import datetime

        if inplace:
            qf = self._obj
        else:
            qf = self._obj.copy()

        if 'TFLAG' in qf.data_vars:
            tflag = qf.data_vars['TFLAG'][:, 0].values.copy()
            if (tflag[:, 0] < 1).all():
                tflag[:, 0] = 1970001
            times = pd.to_datetime([
                datetime.strptime(f'{JDATE}T{TIME:06d}', '%Y%jT%H%M%S')
                for JDATE, TIME in tflag
            ])
        elif (
            'TSTEP' in qf.coords
            and np.issubdtype(qf.coords['TSTEP'].dtype, np.datetime64)
        ):
            times = pd.to_datetime(np.atleast_1d(qf.coords['TSTEP'].values))
        else:
            SDATE = qf.attrs.get('SDATE', 1970001)
            if SDATE < 1:
                SDATE = 1970001
            STIME = qf.attrs.get('STIME', 0)
            date = datetime.strptime(f'{SDATE}T{STIME:06d}', '%Y%jT%H%M%S')
            nt = qf.sizes.get('TSTEP', 1)
            TSTEP = qf.attrs.get('TSTEP', 10000)
            dm = (TSTEP % 10000) // 100
            ds = (TSTEP % 100)
            dh = TSTEP // 10000 + dm / 60 + ds / 3600.
            if dh == 0:
                dh = 1
            times = pd.date_range(
                date, periods=nt, freq=pd.to_timedelta(dh, unit='h')
            )

        if 'TSTEP' in qf.dims:
            qf.coords['TSTEP'] = times
        if 'VGLVLS' in qf.attrs and 'LAY' in qf.dims:
            vglvls = np.asarray(qf.attrs['VGLVLS'])
            if vglvls.size == qf.sizes['LAY'] + 1:
                qf.coords['LAY'] = (vglvls[1:] + vglvls[:-1]) / 2

        crs = get_proj4string(qf.attrs)
        if crs is None:
            warnings.warn((
                'Unknown project ({GDTYP}); currently support lonlat (1),'
                + ' lcc (2), polar stereograpic (6), equatorial mercator (7),'
                + ' albers (9)'
            ).format(GDTYP=qf.attrs['GDTYP']))
        else:
            qf.attrs['crs'] = crs
            row = np.arange(qf.sizes['ROW']) + 0.5
            col = np.arange(qf.sizes['COL']) + 0.5
            if qf.attrs['GDTYP'] == 1:
                row = row * qf.attrs['YCELL'] + qf.attrs['YORIG']
                col = col * qf.attrs['XCELL'] + qf.attrs['XORIG']
            qf.coords['ROW'] = row
            qf.coords['COL'] = col

        return qf

    def grid(self, ellipsoid=None):
        """
        Arguments
        ---------
        ellipsoid : tuple or None
            (major, minor) semiaxes; see projection.get_projector

        Returns
        -------
        grid : cmaqsubset.grid.Grid
            Grid of this dataset; reused for the default ellipsoid
        """
        from .grid import Grid
        if ellipsoid is not None:
            return Grid.from_attrs(self._obj.attrs, ellipsoid=ellipsoid)
        if not hasattr(self, '_grid'):
            self._grid = Grid.from_attrs(self._obj.attrs)
        return self._grid

    def vertical(self, onrepair=None):
        """
        Returns
        -------
        spec : cmaqsubset.vertical.VerticalLevelSpec
            From VGTYP, VGTOP, VGLVLS with invalid values repaired
        """
        from .vertical import VerticalLevelSpec
        return VerticalLevelSpec.from_attrs(self._obj.attrs, onrepair=onrepair)

    def corners(self, ellipsoid=None):
        """
        Returns
        -------
        lon, lat : array
            (NROWS + 1, NCOLS + 1) corner longitude and latitude
        """
        return self.grid(ellipsoid=ellipsoid).corners()

    @property
    def proj4string(self):
        if not hasattr(self, '_proj4string'):
            self._proj4string = get_proj4string(self._obj.attrs)
        return self._proj4string

    @property
    def geodf(self):
        return self.grid().geodf

    def bbox(self, ellipsoid=None):
        """
        Returns
        -------
        (swlon, swlat, nelon, nelat)
        """
        return self.grid(ellipsoid=ellipsoid).exterior_bbox()

    def add_lonlat(self, ellipsoid=None, inplace=True):
        """
        Add LONGITUDE and LATITUDE cell center variables (ROW, COL).
        """
        qf = self._obj if inplace else self._obj.copy()
        lon, lat = self.grid(ellipsoid=ellipsoid).centers()
        qf['LONGITUDE'] = xr.DataArray(
            lon.astype('f'), dims=('ROW', 'COL'),
            attrs=_ioattrs('LONGITUDE', 'deg', 'cell center longitude')
        )
        qf['LATITUDE'] = xr.DataArray(
            lat.astype('f'), dims=('ROW', 'COL'),
            attrs=_ioattrs('LATITUDE', 'deg', 'cell center latitude')
        )
        return qf

    def add_elevation(
        self, ht=None, zh=None, cache=None, onrepair=None, inplace=True
    ):
        """
        Add ELEVATION (m above sea level) of layer centers.

        Arguments
        ---------
        ht : xr.DataArray or array or None
            Terrain height (e.g., GRIDCRO2D HT) on the same ROW/COL; if None,
            the sea-level profile is used.
        zh : xr.DataArray or None
            Mid-layer height above ground (e.g., METCRO3D ZH) with TSTEP,
            LAY, ROW, COL. If provided, ELEVATION is HT + ZH and varies with
            time.
        cache : vertical.TerrainProfileCache or None
            Caller-owned cache of the last terrain profile
        onrepair : callable or None
            See vertical.VerticalLevelSpec.check_and_fix

        Returns
        -------
        qf : xr.Dataset
        """
        from .vertical import layer_center_elevations, zh_elevations
        from .errors import InvalidParameter
        qf = self._obj if inplace else self._obj.copy()
        shape = (qf.sizes['ROW'], qf.sizes['COL'])
        heights = None if ht is None else _surface(ht, 'HT')
        if heights is not None and heights.shape != shape:
            raise InvalidParameter(
                'HT', f'shape {heights.shape} does not match {shape}'
            )
        attrs = _ioattrs('ELEVATION', 'm', 'layer center elevation')
        if zh is not None:
            if heights is None:
                raise InvalidParameter('HT', 'required to use ZH')
            zh = zh.transpose('TSTEP', 'LAY', 'ROW', 'COL')
            z = zh_elevations(heights, zh.values)
            qf['ELEVATION'] = xr.DataArray(
                z.astype('f'), dims=zh.dims, attrs=attrs
            )
            return qf
        spec = self.vertical(onrepair=onrepair)
        nlay = qf.sizes.get('LAY', 1)
        if spec.nlayers != nlay:
            raise InvalidParameter(
                'VGLVLS', f'{spec.nlayers} layers does not match LAY {nlay}'
            )
        z = layer_center_elevations(spec, heights, shape=shape, cache=cache)
        qf['ELEVATION'] = xr.DataArray(
            z.astype('f'), dims=('LAY', 'ROW', 'COL'), attrs=attrs
        )
        return qf

    def subset(
        self, TSTEP=None, LAY=None, ROW=None, COL=None, bbox=None,
        clip=False, ellipsoid=None, verbose=0
    ):
        """
        Select 1-based inclusive (first, last) ranges and, optionally, narrow
        ROW/COL to cells that overlap bbox.

        Arguments
        ---------
        TSTEP, LAY, ROW, COL : tuple or None
            1-based inclusive (first, last); None is everything
        bbox : tuple or None
            (west, south, east, north) in decimal degrees
        clip : bool
            Use polygon clipping for cells partly inside bbox
        ellipsoid : tuple or None
            (major, minor) semiaxes; see projection.get_projector
        verbose : int
            Level of verbosity

        Returns
        -------
        outf : xr.Dataset
            Subset with NROWS, NCOLS, NLAYS, XORIG, YORIG, VGLVLS, SDATE and
            STIME updated. Raises EmptySubset if no cell overlaps bbox.
        """
        import numpy as np
        from .subset import SubsetRequest

        qf = self._obj
        req = SubsetRequest(TSTEP=TSTEP, LAY=LAY, ROW=ROW, COL=COL, bbox=bbox)
        grid = None if bbox is None else self.grid(ellipsoid=ellipsoid)
        req, outf = req.apply(qf, grid=grid, clip=clip, verbose=verbose)
        attrs = dict(outf.attrs)
        r0, r1 = req['ROW']
        c0, c1 = req['COL']
        l0, l1 = req['LAY']
        if 'ROW' in qf.dims:
            attrs['NROWS'] = np.int32(r1 - r0 + 1)
            attrs['YORIG'] = qf.attrs['YORIG'] + (r0 - 1) * qf.attrs['YCELL']
        if 'COL' in qf.dims:
            attrs['NCOLS'] = np.int32(c1 - c0 + 1)
            attrs['XORIG'] = qf.attrs['XORIG'] + (c0 - 1) * qf.attrs['XCELL']
        if 'LAY' in qf.dims:
            attrs['NLAYS'] = np.int32(l1 - l0 + 1)
            if 'VGLVLS' in attrs:
                vglvls = np.asarray(attrs['VGLVLS'])
                if vglvls.size == qf.sizes['LAY'] + 1:
                    attrs['VGLVLS'] = vglvls[l0 - 1:l1 + 1]
        if 'TFLAG' in outf.data_vars and outf.sizes.get('TSTEP', 0) > 0:
            attrs['SDATE'] = np.int32(outf['TFLAG'].values[0, 0, 0])
            attrs['STIME'] = np.int32(outf['TFLAG'].values[0, 0, 1])
        outf.attrs = attrs
        return outf

    def subset_time(self, start=None, end=None):
        """
        Arguments
        ---------
        start, end : str or datetime or None
            Inclusive time range (UTC); None is unbounded

        Returns
        -------
        outf : xr.Dataset
            Timesteps within [start, end]; raises EmptySubset if none
        """
        from .subset import time_window
        tstep = time_window(self._obj['TSTEP'].values, start, end)
        return self.subset(TSTEP=tstep)

    def aggregate(self, mode, keys=None, state=None, nworkers=1):
        """
        Reduce TSTEP of variables.

        Arguments
        ---------
        mode : str
            none, daily_mean, daily_max, daily_max8, mean, sum
        keys : list or None
            Variables to aggregate; defaults to all variables with TSTEP
            except TFLAG. Variables without TSTEP are carried through.
        state : dict or None
            For mean and sum, caller-owned RunningAggregate by key that is
            updated so that repeated calls (e.g., one per file) accumulate.
        nworkers : int
            Threads over cells; see aggregate.aggregate

        Returns
        -------
        outf : xr.Dataset
            Daily modes prefix variables with DAILY_MEAN_, DAILY_MAX_ or
            DAILY_MAX8_ and have one TSTEP per 24 consecutive hours starting
            at the first TSTEP. Trailing hours that do not fill a day are
            dropped with a warning; EmptySubset is raised if no day is
            complete. mean and sum have one TSTEP (the first).
        """
        import warnings
        import numpy as np
        import pandas as pd
        from .aggregate import aggregate, daily_funcs, RunningAggregate
        from .aggregate import modes
        from .errors import InvalidParameter, EmptySubset

        qf = self._obj
        if mode not in modes:
            raise InvalidParameter('mode', f'{mode} not in {modes}')
        if mode == 'none':
            return qf
        if keys is None:
            keys = [
                k for k, v in qf.data_vars.items()
                if k != 'TFLAG' and 'TSTEP' in v.dims
            ]
        times = pd.to_datetime(qf['TSTEP'].values)
        outvars = {}
        if mode in daily_funcs:
            prefix = mode.upper() + '_'
            dt = np.diff(times.values)
            if (dt != np.timedelta64(1, 'h')).any():
                raise InvalidParameter(
                    'TSTEP', f'{mode} requires consecutive hourly timesteps'
                )
            ndays = times.size // 24
            if ndays == 0:
                raise EmptySubset(
                    f'{mode} requires 24 hourly timesteps; got {times.size}'
                )
            nextra = times.size - ndays * 24
            if nextra > 0:
                warnings.warn(
                    f'{mode} dropped {nextra} timesteps from'
                    + f' {times[-nextra]} (incomplete day)'
                )
            outtimes = times[:ndays * 24:24]
            for key in keys:
                var = qf[key].transpose('TSTEP', ...)
                vals = var.values
                out = np.stack([
                    aggregate(
                        vals[di * 24:(di + 1) * 24], mode, nworkers=nworkers
                    )
                    for di in range(ndays)
                ])
                outkey = prefix + key
                attrs = dict(var.attrs)
                attrs['long_name'] = outkey.ljust(16)
                attrs['var_desc'] = (
                    f'{mode} of ' + attrs.get('var_desc', key).strip()
                ).ljust(80)
                outvars[outkey] = xr.DataArray(
                    out.astype(var.dtype), dims=var.dims, attrs=attrs
                )
            tstep = 240000
        else:
            if state is None:
                state = {}
            outtimes = times[:1]
            for key in keys:
                var = qf[key].transpose('TSTEP', ...)
                if key not in state:
                    state[key] = RunningAggregate(var.shape[1:], mode)
                out = aggregate(
                    var.values, mode, state=state[key], nworkers=nworkers
                )
                outvars[key] = xr.DataArray(
                    out[None].astype(var.dtype), dims=var.dims,
                    attrs=var.attrs
                )
            tstep = 0
        for key, var in qf.data_vars.items():
            if key != 'TFLAG' and 'TSTEP' not in var.dims:
                outvars[key] = var
        coords = {
            k: qf.coords[k] for k in ['LAY', 'ROW', 'COL'] if k in qf.coords
        }
        coords['TSTEP'] = outtimes
        outf = xr.Dataset(outvars, coords=coords, attrs=dict(qf.attrs))
        outf.attrs['TSTEP'] = np.int32(tstep)
        return outf

    def mole_per_m2(self, metf=None, add=True):
        """
        Arguments
        ---------
        metf : xr.Dataset
            File with ZF and DENS, or ZF, PRES, and TEMP variables.
        add : bool
            If True, add MOL_PER_M2 as a variable to self.

        Returns
        -------
        MOL_PER_M2 : xr.DataArray
        """
        import warnings
        # https://github.com/USEPA/CMAQ/blob/main/CCTM/src/ICL/fixed/const/
        # CONST.EXT
        R = 8.314459848
        MWAIR = 0.0289628
        if metf is None:
            metf = self._obj
        if 'ZF' not in metf.variables:
            raise KeyError('Must have ZF and DENS or PRES/TEMP')
        ZF = metf['ZF']
        # Layer 1 and the difference above it.
        DZ = xr.concat([
            ZF.isel(LAY=slice(None, 1)), ZF.diff('LAY', n=1)
        ], dim='LAY')
        if 'DENS' in metf.variables:
            MOL_PER_M2 = metf['DENS'] / MWAIR * DZ
        elif 'PRES' in metf.variables and 'TEMP' in metf.variables:
            MOL_PER_M2 = metf['PRES'] / R / metf['TEMP'] * DZ
            warnings.warn('Using wet mole density')
        else:
            raise KeyError(
                'Your file has ZF, but must also have DENS or PRES/TEMP'
            )
        MOL_PER_M2.attrs.update(
            _ioattrs('MOL_PER_M2', 'mole/m**2', 'air areal density')
        )
        if add:
            self._obj['MOL_PER_M2'] = MOL_PER_M2

        return MOL_PER_M2

    def integrate_layers(self, key, metf=None):
        """
        Integrate a ppmV or ppbV variable over LAY to molecules/cm2.

        Arguments
        ---------
        key : str
            Variable to integrate
        metf : xr.Dataset or None
            File with ZF and DENS (e.g., METCRO3D); defaults to self

        Returns
        -------
        out : xr.DataArray
            (TSTEP, ROW, COL) column density; BADVAL3 where any layer is
            missing
        """
        from .aggregate import is_valid, BADVAL3
        from .errors import InvalidParameter
        var = self._obj[key]
        units = var.attrs.get('units', '').strip().lower()
        factors = {'ppmv': 1e-6, 'ppm': 1e-6, 'ppbv': 1e-9, 'ppb': 1e-9}
        if units not in factors:
            raise InvalidParameter(
                'units', f'{key} has {units!r}; must be ppmV or ppbV'
            )
        MOL_PER_M2 = self.mole_per_m2(metf=metf, add=False)
        # molecules/cm2 = mol/m2 * ppm * 1e-6 * AVOGADRO / 1e4 cm2/m2
        valid = (
            xr.DataArray(is_valid(var.values), dims=var.dims)
            & xr.DataArray(is_valid(MOL_PER_M2.values), dims=MOL_PER_M2.dims)
        )
        term = var.variable * factors[units] * MOL_PER_M2.variable
        term = xr.DataArray(term.values, dims=term.dims) * AVOGADRO / 1e4
        out = term.where(valid).sum('LAY', min_count=1)
        out = out.where(valid.all('LAY'), BADVAL3)
        out.attrs.update(_ioattrs(
            key, 'molecules/cm2', f'{key} integrated over layers'
        ))
        out = out.assign_coords(**{
            k: var.coords[k] for k in ['TSTEP', 'ROW', 'COL']
            if k in var.coords
        })
        return out.astype(var.dtype).transpose('TSTEP', 'ROW', 'COL')

    def to_ioapi(self, reset_index=True, drop=True):
        """
        Infer standard IOAPI properties (including TFLAG) as possible.
        """
        import numpy as np
        import pandas as pd

        now = pd.to_datetime('now')
        jnow = np.int32(now.strftime('%Y%j'))
        tnow = np.int32(now.strftime('%H%M%S'))
        outf = self._obj.drop_vars('TFLAG', errors='ignore')
        if not np.issubdtype(outf['TSTEP'].dtype, np.datetime64):
            outf = outf.cms.add_coords(inplace=False)
        nt = outf.sizes.get('TSTEP', 1)
        nl = outf.sizes.get('LAY', 1)

        outkeys = list(outf.data_vars)
        for k in outkeys:
            outvar = outf[k]
            dims = outvar.dims
            if 'LAY' not in dims:
                outvar = outvar.expand_dims(LAY=nl)
            if 'TSTEP' not in dims:
                outvar = outvar.expand_dims(TSTEP=nt)
            outvar = outvar.transpose('TSTEP', 'LAY', 'ROW', 'COL')
            defattrs = _ioattrs(k, 'unknown', k)
            defattrs.update(outvar.attrs)
            outf[k] = outvar.astype('f')
            outf[k].attrs.update(defattrs)

        nv = np.int32(len(outkeys))
        defattrs = {
            'EXEC_ID': 'NA'.ljust(80), 'IOAPI_VERSION': 'NA'.ljust(80),
            'UPNAM': 'cmaqsubset'.ljust(16), 'FTYPE': np.int32(1),
            'VGTOP': np.float32(5000), 'VGTYP': np.int32(-9999),
            'CDATE': jnow, 'CTIME': tnow, 'TSTEP': np.int32(10000),
            'FILEDESC': 'Unknown'.ljust(80),
            'HISTORY': f'Created {now:%Y-%m-%dT%H:%M:%S}'.ljust(80),
        }
        # Overwrite any pre-existing values
        defattrs.update(self._obj.attrs)
        outf.attrs = defattrs

        vglvls = np.asarray(outf.attrs.get('VGLVLS', [1., 0.]), dtype='f')
        if vglvls.size != nl + 1:
            if nl == 1:
                vglvls = vglvls[[0, -1]]
            else:
                vglvls = np.linspace(0, 1, nl + 1, dtype='f')[::-1]
        times = pd.to_datetime(np.atleast_1d(outf['TSTEP'].values))
        jday = np.array([int(t.strftime('%Y%j')) for t in times], dtype='i')
        time = np.array([int(t.strftime('%H%M%S')) for t in times], dtype='i')
        tflag = np.array([jday, time]).T[:, None, :].repeat(nv, 1)
        outf['TFLAG'] = xr.DataArray(
            tflag, dims=('TSTEP', 'VAR', 'DATE-TIME',),
            attrs=dict(
                units='<YYYYJJJ,HHMMSS>', long_name='TFLAG'.ljust(16),
                var_desc='Timestep-valid flags:  (1) YYYYDDD or (2) HHMMSS'
            )
        )
        if nt > 1:
            dt = int(np.diff(times.values).mean().astype('l') / 1e9)
            tstep = f'{dt // 3600:.0f}{(dt % 3600) // 60:02.0f}{dt % 60:02.0f}'
            outf.attrs['TSTEP'] = np.int32(tstep)
        outf.attrs.update(
            NVARS=nv, NLAYS=np.int32(nl), NROWS=np.int32(outf.sizes['ROW']),
            NCOLS=np.int32(outf.sizes['COL']), VGLVLS=vglvls,
            SDATE=np.int32(jday[0]), STIME=np.int32(time[0]),
            WDATE=jnow, WTIME=tnow,
        )
        outf.attrs['VAR-LIST'] = ''.join([k.ljust(16) for k in outkeys])
        outf.attrs.pop('crs', None)
        outf = outf[['TFLAG'] + outkeys]
        if reset_index:
            outf = outf.reset_index(
                [
                    k for k in ['TSTEP', 'LAY', 'ROW', 'COL']
                    if k in outf.indexes
                ], drop=drop
            )
        return outf

    def to_coards(self, description=''):
        """
        Convert to a COARDS-conventions dataset with dimensions time, z, y,
        x; LONGITUDE, LATITUDE and ELEVATION become longitude, latitude, and
        elevation. Missing values become -9999.

        Returns
        -------
        outf : xr.Dataset
        """
        import numpy as np
        import pandas as pd
        from .aggregate import is_valid

        qf = self._obj
        times = pd.to_datetime(np.atleast_1d(qf['TSTEP'].values))
        dimmap = dict(TSTEP='time', LAY='z', ROW='y', COL='x')
        coordkeys = dict(
            LONGITUDE=('longitude', 'degrees_east'),
            LATITUDE=('latitude', 'degrees_north'),
            ELEVATION=('elevation', 'meters'),
        )
        nl = qf.sizes.get('LAY', 1)
        outvars = {}
        for key, var in qf.data_vars.items():
            if key == 'TFLAG':
                continue
            if 'LAY' not in var.dims:
                var = var.expand_dims(LAY=nl)
            if key in coordkeys:
                outkey, units = coordkeys[key]
                attrs = dict(units=units)
                if key == 'ELEVATION':
                    attrs.update(positive='up')
            else:
                outkey = key
                units = var.attrs.get('units', 'unknown').strip()
                attrs = dict(units=units, missing_value=np.float32(-9999.))
                if 'TSTEP' not in var.dims:
                    var = var.expand_dims(TSTEP=times.size)
            order = [
                d for d in ['TSTEP', 'LAY', 'ROW', 'COL'] if d in var.dims
            ]
            vals = var.transpose(*order).values.astype('f')
            vals = np.where(is_valid(vals), vals, np.float32(-9999.))
            outvars[outkey] = xr.DataArray(
                vals, dims=[dimmap[d] for d in order], attrs=attrs
            )
        hours = (times - times[0]) / pd.to_timedelta(1, unit='h')
        outvars['yyyymmdd'] = xr.DataArray(
            np.array(times.strftime('%Y%m%d'), dtype='i'), dims=('time',),
            attrs=dict(units='yyyymmdd')
        )
        outvars['hhmmss'] = xr.DataArray(
            np.array(times.strftime('%H%M%S'), dtype='i'), dims=('time',),
            attrs=dict(units='hhmmss')
        )
        outvars['time'] = xr.DataArray(
            np.asarray(hours, dtype='f'), dims=('time',), attrs=dict(
                units=f'hours since {times[0]:%Y-%m-%d %H:%M:%S}.0 -00:00'
            )
        )
        outf = xr.Dataset(outvars)
        if 'longitude' in outf:
            lon = outf['longitude'].values
            lat = outf['latitude'].values
            west, east = lon.min(), lon.max()
            south, north = lat.min(), lat.max()
        else:
            west, south, east, north = self.bbox()
        outf.attrs.update(
            grid=str(qf.attrs.get('GDNAM', 'unknown')).strip(),
            Conventions='COARDS', history=description,
            west_bound=np.float32(west), east_bound=np.float32(east),
            south_bound=np.float32(south), north_bound=np.float32(north),
        )
        return outf

    def to_ascii(self, path=None, keys=None):
        """
        Write (or return) a tab-separated table with one row per timestep
        and cell: Timestamp(UTC), then LONGITUDE, LATITUDE, ELEVATION if
        present, then keys, each labeled NAME(units).

        Arguments
        ---------
        path : str or None
            Output path; if None, the table is returned as a str
        keys : list or None
            Data variables; defaults to all except TFLAG

        Returns
        -------
        out : str or None
        """
        import pandas as pd
        qf = self._obj
        front = [k for k in ['LONGITUDE', 'LATITUDE', 'ELEVATION'] if k in qf]
        if keys is None:
            keys = [k for k in qf.data_vars if k != 'TFLAG']
        keys = front + [k for k in keys if k not in front]
        kf = qf[keys]
        order = [d for d in ['TSTEP', 'LAY', 'ROW', 'COL'] if d in kf.dims]
        df = kf.to_dataframe(dim_order=order).reset_index()
        times = pd.to_datetime(df['TSTEP'])
        outdf = pd.DataFrame({
            'Timestamp(UTC)': times.dt.strftime('%Y-%m-%dT%H:%M:%S-0000')
        })
        for key in keys:
            units = qf[key].attrs.get('units', 'unknown').strip()
            outdf[f'{key}({units})'] = df[key].values
        return outdf.to_csv(
            path, sep='\t', index=False, float_format='%28.18e'
        )
