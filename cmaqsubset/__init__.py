__all__ = [
    'utils', 'errors', 'projection', 'grid', 'subset', 'vertical',
    'aggregate', 'cmaq', 'drivers', 'open_ioapi', 'open_griddesc',
    'SubsetRequest', 'VerticalLevelSpec', 'Grid'
]

__doc__ = """
Overview
========

cmaqsubset subsets CMAQ (IOAPI) files. This has four basic steps:
  1. Narrow the file by time, layer, row, column, or a longitude/latitude
     bounding box (optionally with exact polygon clipping),
  2. optionally add LONGITUDE, LATITUDE, and ELEVATION,
  3. optionally integrate layers or aggregate time (daily mean, daily max,
     daily max of 8-hour means, mean, or sum), and
  4. write IOAPI, COARDS, or tab-separated ASCII.

Core Objects
============

  * open_ioapi : Used to open CMAQ and MCIP data.
  * open_griddesc : define a CMAQ grid by name or GRIDDESC.
  * SubsetRequest : 1-based ranges and bounding box to apply to a file.
  * VerticalLevelSpec : VGTYP, VGTOP, VGLVLS with repair of bad metadata.
  * Dataset.cms : accessor with subset, add_lonlat, add_elevation,
    aggregate, integrate_layers, to_ioapi, to_coards, and to_ascii.

Subset Example
==============

    # Import Libraries
    import cmaqsubset as cms

    # Keep ozone for the Houston area on 2019-07-24
    qf = cms.open_ioapi('CCTM_CONC_20190724_12US1.nc')[['O3']]
    qf = qf.cms.subset_time('2019-07-24T00', '2019-07-24T23')
    qf = qf.cms.subset(LAY=(1, 1), bbox=(-96, 29, -94.5, 30.5))
    qf.cms.add_lonlat()

    # Daily max 8-hour average ozone
    mda8 = qf.cms.aggregate('daily_max8')
    mda8.cms.to_ioapi().to_netcdf('MDA8_O3_20190724_HOU.nc')
    mda8.cms.to_coards().to_netcdf('MDA8_O3_20190724_HOU_COARDS.nc')

Command Line Example
====================

    python -m cmaqsubset subset --bounds -96 29 -94.5 30.5 --layer 1 \\
      -v O3 --aggregate daily_max8 --lonlat --format coards \\
      --outpath MDA8_O3_HOU.nc CCTM_CONC_20190724_12US1.nc

"""

from . import utils
from . import errors
from . import projection
from . import grid
from . import subset
from . import vertical
from . import aggregate
from . import cmaq
from . import drivers

__version__ = '0.1.0'

open_ioapi = cmaq.open_ioapi
open_griddesc = cmaq.open_griddesc
SubsetRequest = subset.SubsetRequest
VerticalLevelSpec = vertical.VerticalLevelSpec
Grid = grid.Grid
