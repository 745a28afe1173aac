import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

with open("cmaqsubset/__init__.py", "r") as fh:
    for l in fh:
        if l.startswith('__version__'):
            exec(l)
            break
    else:
        __version__ = 'x.y.z'

setuptools.setup(
    name="cmaqsubset",
    version=__version__,
    author="Barron H. Henderson",
    author_email="barronh@gmail.com",
    description=(
        "Subset, aggregate, and convert CMAQ IOAPI files by time, layer,"
        + " and longitude/latitude bounds."
    ),
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/barronh/cmaqsubset",
    packages=setuptools.find_packages(),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Development Status :: 2 - Pre-Alpha",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.8',
    install_requires=[
        "numpy", "pandas<3", "geopandas", "xarray", "pyproj", "shapely>=2",
        "netCDF4"
    ],
    extras_require={
        "test": ["pytest"],
    },
)
