import os
from .. import cmaq
from ..errors import outcome, InvalidParameter
from ..aggregate import modes


def _range(values, key):
    """1-based (first, last) from one or two command line values"""
    if values is None:
        return None
    if len(values) not in (1, 2):
        raise InvalidParameter(key, f'expected first [last]; got {values}')
    first = int(values[0])
    last = int(values[-1])
    return (first, last)


def _flatten(variables):
    myvariables = []
    for varkey in variables:
        myvariables.extend([k for k in varkey.split(',') if k != ''])
    return myvariables


def _open_met(paths, verbose=0):
    import xarray as xr
    if paths is None or len(paths) == 0:
        return None
    mets = []
    for path in paths:
        if verbose > 0:
            print(path)
        mets.append(cmaq.open_ioapi(path))
    metf = xr.concat(mets, dim='TSTEP', data_vars='minimal')
    metf.attrs.update(mets[0].attrs)
    return metf


def _open_wwind(paths, verbose=0):
    """
    WWIND from METCRO3D files or W_VEL from CCTM_CONC files; every file
    must have the variable found in the first. Missing values are 0.
    """
    import numpy as np
    from ..aggregate import is_valid
    metf = _open_met(paths, verbose=verbose)
    if metf is None:
        return None
    wkey = 'WWIND' if 'WWIND' in metf.data_vars else 'W_VEL'
    if wkey not in metf.data_vars:
        raise KeyError(f'WWIND or W_VEL not in {paths}')
    wwind = metf[wkey]
    vals = wwind.values
    wwind = wwind.copy(data=np.where(is_valid(vals), vals, 0).astype('f'))
    attrs = dict(metf[wkey].attrs)
    attrs['long_name'] = 'WWIND'.ljust(16)
    attrs.setdefault('units', 'm/s'.ljust(16))
    attrs['var_desc'] = 'vertical wind velocity'.ljust(80)
    wwind.attrs = attrs
    return wwind.rename('WWIND')


def list_variables(path):
    """
    Arguments
    ---------
    path : str
        IOAPI file

    Returns
    -------
    keys : list
        Names of variables other than TFLAG with units and descriptions
        printed one per line.
    """
    qf = cmaq.open_ioapi(path)
    keys = [k for k in qf.data_vars if k != 'TFLAG']
    for key in keys:
        attrs = qf[key].attrs
        units = str(attrs.get('units', '')).strip()
        desc = str(attrs.get('var_desc', '')).strip()
        print(f'{key} ({units}) {desc}')
    return keys


def subset(
    inpaths, outpath=None, overwrite=False, outformat='ioapi', ht=None,
    zf=None, wwind=None, variables=None, time=None, layer=None, row=None,
    column=None, bounds=None, clip=False, aggregate='none', lonlat=False,
    elevation=False, integrate_layers=False, ellipsoid=None, nworkers=1,
    description='', list_only=False, verbose=0
):
    """
    Subset IOAPI files and write the result to disk.

    Arguments
    ---------
    inpaths : list
        IOAPI files on disk (e.g., CCTM_CONC for consecutive days)
    outpath : str or None
        path to write out result; If None, default subset.{suffix}
    overwrite : bool
        Overwrite existing files?
    outformat : str
        ioapi, coards (NetCDF) or ascii (tab-separated)
    ht : str or None
        GRIDCRO2D path with HT for elevation
    zf : list or None
        METCRO3D paths with ZH (elevation) or ZF and DENS (integrate_layers)
    wwind : list or None
        METCRO3D paths with WWIND or CCTM_CONC paths with W_VEL; adds WWIND
        subset like the other variables
    variables : list or None
        Variables to keep; comma separated values are split
    time : list or None
        [start] or [start, end] anything pandas.to_datetime accepts
    layer, row, column : list or None
        1-based [first] or [first, last]
    bounds : list or None
        [west, south, east, north]; cannot be combined with row or column
    clip : bool
        Clip cells partly inside bounds
    aggregate : str
        none, daily_mean, daily_max, daily_max8, mean or sum
    lonlat : bool
        Add LONGITUDE and LATITUDE
    elevation : bool
        Add ELEVATION
    integrate_layers : bool
        Integrate ppmV/ppbV variables over layers to molecules/cm2
    ellipsoid : list or None
        [major, minor] semiaxes in meters
    nworkers : int
        Threads used by aggregation
    description : str
        Stored in the output description
    list_only : bool
        Print the variables of the first inpath and return their names
        without writing anything
    verbose : int
        Level of verbosity

    Results
    -------
    outpath : str or None
        Path written or None if no file could be subset (see reasons
        printed). Timesteps already read from an earlier file are skipped,
        so the 25th hour of a CCTM_CONC file is not repeated. Daily
        aggregation is applied once to the joined timesteps.
    """
    import numpy as np
    import xarray as xr
    from datetime import datetime
    from ..aggregate import daily_funcs
    from ..subset import SubsetRequest
    from ..vertical import TerrainProfileCache
    from ..utils import rootremover, cms_version

    if list_only:
        return list_variables(inpaths[0])
    if bounds is not None and (row is not None or column is not None):
        raise InvalidParameter(
            'bounds', 'cannot be combined with row or column'
        )
    if aggregate not in modes:
        raise InvalidParameter('aggregate', f'{aggregate} not in {modes}')
    if integrate_layers and (zf is None or len(zf) == 0):
        raise InvalidParameter('zf', 'integrate_layers requires METCRO3D')
    if integrate_layers and elevation:
        raise InvalidParameter(
            'elevation', 'cannot be combined with integrate_layers'
        )
    if integrate_layers and wwind is not None and len(wwind) > 0:
        raise InvalidParameter(
            'wwind', 'cannot be combined with integrate_layers'
        )
    if time is not None and len(time) not in (1, 2):
        raise InvalidParameter('time', f'expected start [end]; got {time}')
    suffix = dict(ioapi='nc', coards='nc', ascii='txt')[outformat]
    if outpath is None:
        outpath = f'subset.{suffix}'

    if os.path.exists(outpath):
        if overwrite:
            os.remove(outpath)
        else:
            raise IOError(f'{outpath} exists; use -O or --overwrite to force')

    if variables is None:
        variables = []
    myvariables = _flatten(variables)
    if ellipsoid is not None:
        ellipsoid = tuple(float(v) for v in ellipsoid)

    request = SubsetRequest(
        LAY=_range(layer, 'LAY'), ROW=_range(row, 'ROW'),
        COL=_range(column, 'COL'), bbox=bounds
    )
    htf = None if ht is None else cmaq.open_ioapi(ht)
    metf = _open_met(zf, verbose=verbose)
    wwindf = _open_wwind(wwind, verbose=verbose)
    cache = TerrainProfileCache()
    state = {}
    outputs = []
    nodata = {}
    lasttime = None
    for path in inpaths:
        if verbose > 0:
            print(path)
        try:
            qf = cmaq.open_ioapi(path)
        except (OSError, ValueError, KeyError) as e:
            nodata[path] = repr(e)
            if verbose > 0:
                print(nodata[path])
            continue
        if len(myvariables) > 0:
            missing = [k for k in myvariables if k not in qf.data_vars]
            if len(missing) > 0:
                nodata[path] = repr(KeyError(f'{missing} not in {path}'))
                continue
            qf = qf[myvariables]
        if time is not None:
            out = outcome(qf.cms.subset_time, *time[:2])
            if not out.ok:
                nodata[path] = out.reason
                if verbose > 0:
                    print(out.reason)
                continue
            qf = out.value
        if lasttime is not None:
            newidx = np.flatnonzero(qf['TSTEP'].values > lasttime)
            if newidx.size == 0:
                nodata[path] = f'no timesteps after {lasttime}'
                if verbose > 0:
                    print(nodata[path])
                continue
            qf = qf.cms.subset(TSTEP=(newidx[0] + 1, newidx[-1] + 1))
        out = outcome(
            request.narrow, qf.cms.grid(ellipsoid=ellipsoid), clip=clip,
            verbose=verbose
        )
        if not out.ok:
            nodata[path] = out.reason
            if verbose > 0:
                print(out.reason)
            continue
        req = out.value
        qf = qf.cms.subset(LAY=req['LAY'], ROW=req['ROW'], COL=req['COL'])
        if lonlat:
            qf.cms.add_lonlat(ellipsoid=ellipsoid)
        tmetf = None
        try:
            if metf is not None:
                tmetf = metf.sel(TSTEP=qf['TSTEP'].values)
            if wwindf is not None:
                twwind = wwindf.sel(TSTEP=qf['TSTEP'].values)
        except KeyError as e:
            nodata[path] = repr(e)
            if verbose > 0:
                print(nodata[path])
            continue
        if tmetf is not None:
            tmetf = tmetf.cms.subset(
                LAY=req['LAY'], ROW=req['ROW'], COL=req['COL']
            )
        if wwindf is not None:
            twwind = twwind.isel(
                LAY=slice(req['LAY'][0] - 1, req['LAY'][1]),
                ROW=slice(req['ROW'][0] - 1, req['ROW'][1]),
                COL=slice(req['COL'][0] - 1, req['COL'][1]),
            )
            qf['WWIND'] = twwind.drop_vars(
                ['LAY', 'ROW', 'COL'], errors='ignore'
            ).assign_coords(
                {k: qf.coords[k] for k in ['LAY', 'ROW', 'COL']
                 if k in qf.coords}
            )
        if elevation:
            hts = None
            if htf is not None:
                hts = htf.cms.subset(ROW=req['ROW'], COL=req['COL'])['HT']
            zh = None if tmetf is None else tmetf['ZH']
            cache.reset()
            qf.cms.add_elevation(ht=hts, zh=zh, cache=cache)
        if integrate_layers:
            keys = [
                k for k, v in qf.data_vars.items()
                if k != 'TFLAG' and 'LAY' in v.dims and 'TSTEP' in v.dims
            ]
            intf = xr.Dataset(
                {k: qf.cms.integrate_layers(k, metf=tmetf) for k in keys},
                attrs=qf.attrs
            )
            for k in ['LONGITUDE', 'LATITUDE']:
                if k in qf.data_vars:
                    intf[k] = qf[k]
            qf = intf
        lasttime = qf['TSTEP'].values[-1]
        if aggregate not in daily_funcs:
            qf = qf.cms.aggregate(aggregate, state=state, nworkers=nworkers)
        outputs.append(qf)

    if len(outputs) == 0:
        print(f'No data: {nodata}')
        return None

    if aggregate in ('mean', 'sum'):
        # the last output holds values accumulated over all files
        outf = outputs[-1]
        outf.coords['TSTEP'] = outputs[0].coords['TSTEP'].values
    else:
        outf = xr.concat(
            outputs, dim='TSTEP', data_vars='minimal', coords='minimal',
            compat='override'
        )
    outf.attrs.update(outputs[0].attrs)
    if aggregate in ('mean', 'sum'):
        outf.attrs['TSTEP'] = outputs[0].attrs['TSTEP']
    if aggregate in daily_funcs:
        # days span file boundaries, so reduce the joined timesteps
        out = outcome(outf.cms.aggregate, aggregate, nworkers=nworkers)
        if not out.ok:
            nodata['aggregate'] = out.reason
            print(f'No data: {nodata}')
            return None
        outf = out.value
    paths = list(inpaths)
    outf.attrs['description'] = (
        description + '\n - '.join(rootremover(paths, insert=True)[1])
    )
    outf.attrs['history'] = str(nodata)
    outf.attrs['updated'] = datetime.now().strftime('%FT%H:%M:%S%z')
    outf.attrs['cmaqsubset_version'] = cms_version()
    if verbose > 0:
        print(f'Writing {outpath}')
    if outformat == 'ioapi':
        outf.cms.to_ioapi().to_netcdf(outpath)
    elif outformat == 'coards':
        outf.cms.to_coards(
            description=outf.attrs['description']
        ).to_netcdf(outpath)
    else:
        outf.cms.to_ascii(outpath)
    return outpath


def add_subset_parser(subparsers):
    subsetparser = subparsers.add_parser(
        'subset',
        help=(
            'Subset IOAPI files on your local disk by time, layer, row,'
            + ' column or lon/lat bounds and write IOAPI, COARDS or ASCII.'
        )
    )
    subsetparser.add_argument(
        '-O', '--overwrite', default=False, action='store_true',
        help='--outpath will be removed before running the command'
    )
    subsetparser.add_argument(
        '--outpath', default=None,
        help='Defaults to subset.{suffix}'
    )
    subsetparser.add_argument(
        '--format', dest='outformat', default='ioapi',
        choices=('ioapi', 'coards', 'ascii'),
        help='Output format (default ioapi)'
    )
    subsetparser.add_argument(
        '--ht', default=None, metavar='GRIDCRO2D',
        help='File with HT (terrain height) for --elevation'
    )
    subsetparser.add_argument(
        '--zf', default=None, nargs='+', metavar='METCRO3D',
        help='Files with ZH for --elevation or ZF, DENS for'
        + ' --integrate-layers'
    )
    subsetparser.add_argument(
        '--wwind', default=None, nargs='+', metavar='METCRO3D',
        help='Files with WWIND (METCRO3D) or W_VEL (CCTM_CONC) to add WWIND'
    )
    subsetparser.add_argument(
        '--list', dest='list_only', default=False, action='store_true',
        help='List variables in the first input file and exit'
    )
    subsetparser.add_argument(
        '-v', '--variables', default=[], action='append',
        help='Use comma separated variables or multiple --variables options.'
    )
    subsetparser.add_argument(
        '--time', default=None, nargs='+', metavar='TIME',
        help='START [END] (e.g., 2002-04-23T00 2002-04-24T23)'
    )
    subsetparser.add_argument(
        '--layer', default=None, nargs='+', type=int, metavar='LAY',
        help='1-based FIRST [LAST] layer'
    )
    subsetparser.add_argument(
        '--row', default=None, nargs='+', type=int, metavar='ROW',
        help='1-based FIRST [LAST] row'
    )
    subsetparser.add_argument(
        '--column', default=None, nargs='+', type=int, metavar='COL',
        help='1-based FIRST [LAST] column'
    )
    subsetparser.add_argument(
        '--bounds', default=None, nargs=4, type=float,
        metavar=('WEST', 'SOUTH', 'EAST', 'NORTH'),
        help='Lon/lat bounds; cannot be combined with --row or --column'
    )
    subsetparser.add_argument(
        '--clip', default=False, action='store_true',
        help='Clip cells partly inside --bounds (slower, exact)'
    )
    subsetparser.add_argument(
        '--aggregate', default='none', choices=modes,
        help='daily_max8 is the daily max of 8-hour means'
    )
    subsetparser.add_argument(
        '--lonlat', default=False, action='store_true',
        help='Add LONGITUDE and LATITUDE'
    )
    subsetparser.add_argument(
        '--elevation', default=False, action='store_true',
        help='Add ELEVATION (uses --ht and --zf if provided)'
    )
    subsetparser.add_argument(
        '--integrate-layers', dest='integrate_layers', default=False,
        action='store_true',
        help='Integrate ppmV or ppbV variables over layers to molecules/cm2'
    )
    subsetparser.add_argument(
        '--ellipsoid', default=None, nargs=2, type=float,
        metavar=('MAJOR', 'MINOR'),
        help='Semiaxes in meters (default sphere of radius 6370000)'
    )
    subsetparser.add_argument(
        '--nworkers', default=1, type=int,
        help='Threads used for aggregation'
    )
    subsetparser.add_argument(
        '--description', default='', help='Text added to description'
    )
    subsetparser.add_argument(
        '--verbose', default=0, action='count', help='Increase verbosity'
    )
    subsetparser.add_argument(
        'inpaths', nargs='+',
        help='IOAPI files (e.g., CCTM_CONC) in time order'
    )
