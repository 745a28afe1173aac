import pytest
from .. import drivers
from ..drivers import localdisk
from .test_cmaq import conc_example, met_example


def _write(tmp_path, name, ds):
    path = str(tmp_path / name)
    ds.to_netcdf(path)
    return path


def test_parse_args_norun():
    kwargs = drivers.parse_args(
        ['subset', '-v', 'O3,NO2', '-v', 'CO', '--row', '2', '3', 'a.nc'],
        run=False
    )
    assert (kwargs['variables'] == ['O3,NO2', 'CO'])
    assert (kwargs['row'] == [2, 3])
    assert (kwargs['inpaths'] == ['a.nc'])
    assert (kwargs['aggregate'] == 'none')
    assert (localdisk._flatten(kwargs['variables']) == ['O3', 'NO2', 'CO'])


def test_subset_coards(tmp_path):
    import xarray as xr
    inpath = _write(tmp_path, 'CONC.nc', conc_example())
    outpath = str(tmp_path / 'out.nc')
    out = drivers.parse_args([
        'subset', '--outpath', outpath, '--format', 'coards', '--bounds',
        '-98.5', '31.5', '-96.5', '32.5', '--layer', '1', '--lonlat', inpath
    ])
    assert (out == outpath)
    with xr.open_dataset(outpath, decode_times=False) as cf:
        assert (cf['O3'].dims == ('time', 'z', 'y', 'x'))
        assert (cf['O3'].shape == (25, 1, 2, 3))
        assert (cf['longitude'].shape == (1, 2, 3))
        assert (cf.attrs['Conventions'] == 'COARDS')


def test_subset_ioapi_daily(tmp_path):
    import numpy as np
    from .. import cmaq
    inpath = _write(tmp_path, 'CONC.nc', conc_example())
    outpath = str(tmp_path / 'out.nc')
    with pytest.warns(UserWarning, match='incomplete day'):
        localdisk.subset(
            [inpath], outpath=outpath, variables=['O3'], row=[1, 2],
            column=[2], aggregate='daily_max8', nworkers=2
        )
    qf = cmaq.open_ioapi(outpath)
    assert (qf['DAILY_MAX8_O3'].shape == (1, 2, 2, 1))
    assert (np.allclose(qf['DAILY_MAX8_O3'].values[0], 18.5))
    assert (qf.attrs['TSTEP'] == 240000)
    assert (qf.attrs['NCOLS'] == 1 and qf.attrs['XORIG'] == -99.)


def test_subset_daily_across_files(tmp_path):
    import numpy as np
    import pandas as pd
    from .. import cmaq
    inpaths = [
        _write(tmp_path, 'CONC1.nc', conc_example(start='2019-07-24T00')),
        _write(tmp_path, 'CONC2.nc', conc_example(start='2019-07-25T00')),
    ]
    outpath = str(tmp_path / 'out.nc')
    with pytest.warns(UserWarning, match='incomplete day'):
        localdisk.subset(
            inpaths, outpath=outpath, layer=[1], aggregate='daily_max8'
        )
    qf = cmaq.open_ioapi(outpath)
    times = pd.to_datetime(qf['TSTEP'].values)
    assert (list(times) == list(pd.to_datetime(['2019-07-24', '2019-07-25'])))
    # 07-25T00 comes from the 25th hour of the first file
    assert (np.allclose(qf['DAILY_MAX8_O3'].values, 18.5))
    with pytest.warns(UserWarning, match='incomplete day'):
        localdisk.subset(
            inpaths, outpath=outpath, overwrite=True, layer=[1],
            aggregate='daily_mean'
        )
    qf = cmaq.open_ioapi(outpath)
    vals = qf['DAILY_MEAN_O3'].values
    assert (vals.shape == (2, 1, 4, 5))
    assert (np.allclose(vals[0], 11.5) and np.allclose(vals[1], 12.5))


def test_subset_mean_overlapping_files(tmp_path):
    import numpy as np
    from .. import cmaq
    inpaths = [
        _write(tmp_path, 'CONC1.nc', conc_example(start='2019-07-24T00')),
        _write(tmp_path, 'CONC2.nc', conc_example(start='2019-07-25T00')),
    ]
    outpath = str(tmp_path / 'out.nc')
    localdisk.subset(inpaths, outpath=outpath, aggregate='sum')
    qf = cmaq.open_ioapi(outpath)
    # hours 0-24 of the first file and hours 1-24 of the second
    assert (np.allclose(qf['O3'].values, 600.))
    localdisk.subset(inpaths, outpath=outpath, overwrite=True)
    qf = cmaq.open_ioapi(outpath)
    assert (qf.sizes['TSTEP'] == 49)


def test_subset_wwind(tmp_path):
    import numpy as np
    from .. import cmaq
    from ..aggregate import BADVAL3
    from ..errors import InvalidParameter
    inpath = _write(tmp_path, 'CONC.nc', conc_example())
    mf = met_example()
    mf['WWIND'] = mf['ZF'] * 0 + np.float32(0.5)
    mf['WWIND'].attrs['units'] = 'm/s'
    mf['WWIND'][0, 0, 1, 0] = BADVAL3
    metpath = _write(tmp_path, 'METCRO3D.nc', mf)
    outpath = str(tmp_path / 'out.nc')
    localdisk.subset(
        [inpath], outpath=outpath, wwind=[metpath], layer=[1], row=[2, 3]
    )
    qf = cmaq.open_ioapi(outpath)
    w = qf['WWIND'].values
    assert (w.shape == (25, 1, 2, 5))
    assert (w[0, 0, 0, 0] == 0.)
    assert (np.allclose(w[1:], 0.5) and np.allclose(w[0, 0, 1], 0.5))
    assert (np.allclose(qf['O3'].values[:, 0, 0, 0], np.arange(25)))
    with pytest.raises(InvalidParameter) as ei:
        localdisk.subset(
            [inpath], outpath=outpath, overwrite=True, wwind=[metpath],
            zf=[metpath], integrate_layers=True
        )
    assert (ei.value.field == 'wwind')


def test_subset_list(tmp_path, capsys):
    inpath = _write(tmp_path, 'CONC.nc', conc_example())
    keys = drivers.parse_args(['subset', '--list', inpath])
    assert (keys == ['O3'])
    assert ('O3 (ppmV) ozone' in capsys.readouterr().out)


def test_subset_mean_files(tmp_path):
    import numpy as np
    from .. import cmaq
    conc = conc_example()
    inpaths = [
        _write(tmp_path, 'CONC1.nc', conc.isel(TSTEP=slice(0, 12))),
        _write(tmp_path, 'CONC2.nc', conc.isel(TSTEP=slice(12, None))),
    ]
    outpath = str(tmp_path / 'out.nc')
    localdisk.subset(inpaths, outpath=outpath, aggregate='mean')
    qf = cmaq.open_ioapi(outpath)
    assert (qf.sizes['TSTEP'] == 1)
    assert (np.allclose(qf['O3'].values, 12.))
    assert ('root: ' in qf.attrs['description'])


def test_subset_ascii(tmp_path):
    inpath = _write(tmp_path, 'CONC.nc', conc_example())
    outpath = str(tmp_path / 'out.txt')
    localdisk.subset(
        [inpath], outpath=outpath, outformat='ascii', layer=[1], row=[1],
        column=[1], lonlat=True, time=['2019-07-24T10', '2019-07-24T12']
    )
    with open(outpath) as txtf:
        lines = txtf.read().splitlines()
    assert (len(lines) == 4)
    assert (lines[0].startswith('Timestamp(UTC)\tLONGITUDE(deg)'))
    assert (lines[1].split('\t')[0] == '2019-07-24T10:00:00-0000')


def test_subset_elevation(tmp_path):
    import numpy as np
    from .. import cmaq
    inpath = _write(tmp_path, 'CONC.nc', conc_example())
    gf = conc_example(nt=1, nl=1).rename(O3='HT')
    gf['HT'][:] = 250.
    htpath = _write(tmp_path, 'GRIDCRO2D.nc', gf)
    metpath = _write(tmp_path, 'METCRO3D.nc', met_example())
    outpath = str(tmp_path / 'out.nc')
    localdisk.subset(
        [inpath], outpath=outpath, ht=htpath, elevation=True,
        row=[2, 3]
    )
    qf = cmaq.open_ioapi(outpath)
    z = qf['ELEVATION'].values
    assert (z.shape == (25, 2, 2, 5))
    assert ((z[:, 0] > 250).all() and (z[:, 1] > z[:, 0]).all())
    localdisk.subset(
        [inpath], outpath=outpath, overwrite=True, ht=htpath, zf=[metpath],
        elevation=True
    )
    qf = cmaq.open_ioapi(outpath)
    assert (np.allclose(qf['ELEVATION'].values[:, 1], 500.))


def test_subset_integrate_layers(tmp_path):
    import numpy as np
    from .. import cmaq
    inpath = _write(tmp_path, 'CONC.nc', conc_example())
    metpath = _write(tmp_path, 'METCRO3D.nc', met_example())
    outpath = str(tmp_path / 'out.nc')
    localdisk.subset(
        [inpath], outpath=outpath, zf=[metpath], integrate_layers=True,
        time=['2019-07-24T01', '2019-07-24T02']
    )
    qf = cmaq.open_ioapi(outpath)
    assert (qf['O3'].shape == (2, 1, 4, 5))
    assert (qf['O3'].attrs['units'].strip() == 'molecules/cm2')
    mol = 1.2 / 0.0289628 * 300.
    expected = mol * 1e-6 * cmaq.AVOGADRO / 1e4
    assert (np.allclose(qf['O3'].values[0], expected, rtol=1e-5))
    assert (np.allclose(qf['O3'].values[1], 2 * expected, rtol=1e-5))


def test_subset_nodata(tmp_path):
    inpath = _write(tmp_path, 'CONC.nc', conc_example())
    outpath = str(tmp_path / 'out.nc')
    out = localdisk.subset(
        [inpath, str(tmp_path / 'missing.nc')], outpath=outpath,
        bounds=[0, 0, 1, 1]
    )
    assert (out is None)


def test_subset_errors(tmp_path):
    from ..errors import InvalidParameter
    inpath = _write(tmp_path, 'CONC.nc', conc_example())
    outpath = _write(tmp_path, 'exists.nc', conc_example(nt=1))
    with pytest.raises(IOError):
        localdisk.subset([inpath], outpath=outpath)
    with pytest.raises(InvalidParameter) as ei:
        localdisk.subset(
            [inpath], outpath=outpath, overwrite=True, bounds=[0, 0, 1, 1],
            row=[1]
        )
    assert (ei.value.field == 'bounds')
    with pytest.raises(InvalidParameter) as ei:
        localdisk.subset(
            [inpath], outpath=outpath, overwrite=True, aggregate='median'
        )
    assert (ei.value.field == 'aggregate')
