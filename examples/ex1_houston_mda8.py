"""
Houston MDA8 Ozone
==================

This script subsets a CMAQ CONC file to the Houston area, computes the daily
maximum 8-hour average (MDA8) ozone in the first layer, and writes IOAPI and
COARDS files plus a tab-separated table with layer-center elevations.

It assumes that you have a CMAQ CONC file with O3 and the GRIDCRO2D file
(for HT) on the 12US1 grid. You can use your own data or download data from
the EPA's Air QUAlity TimE Series (`EQUATES`_) Project.

.. _EQUATES: https://www.epa.gov/cmaq/equates
"""
# %%
# Import Library and Configure
# ----------------------------
import cmaqsubset as cms

# Using common EPA Lambert Conic Conformal 12-km grid
GDNAM = '12US1'
# Doing just one day
date = '2019-07-24'
# Houston west, south, east, north
bbox = (-96, 29, -94.5, 30.5)

# %%
# Subset Data
# -----------

# Open a CMAQ CONC file that has the O3 variable.
qf = cms.open_ioapi(f'CCTM_CONC_{date}_{GDNAM}.nc')[['O3']]
qf = qf.cms.subset_time(f'{date}T00', f'{date}T23')
qf = qf.cms.subset(LAY=(1, 1), bbox=bbox, verbose=1)
qf.cms.add_lonlat()

# Terrain from GRIDCRO2D for the same rows and columns
gf = cms.open_ioapi(f'GRIDCRO2D_{GDNAM}.nc')
gf = gf.cms.subset(bbox=bbox)
qf.cms.add_elevation(ht=gf['HT'])

# %%
# Aggregate and Write
# -------------------

mda8 = qf.cms.aggregate('daily_max8')
mda8.cms.to_ioapi().to_netcdf(f'MDA8_O3_{date}_HOU.nc')
mda8.cms.to_coards(
    description=f'MDA8 O3 for {date} near Houston'
).to_netcdf(f'MDA8_O3_{date}_HOU_COARDS.nc')
qf.cms.to_ascii(f'O3_{date}_HOU.txt')
