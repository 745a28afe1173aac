__all__ = [
    'BADVAL3', 'is_valid', 'daily_mean', 'daily_max', 'daily_max8',
    'RunningAggregate', 'aggregate', 'modes'
]

import numpy as np

from .errors import InvalidParameter

# IOAPI missing value; anything at or below AMISS3 is missing
BADVAL3 = -9.999e36
AMISS3 = -9.000e36

modes = ('none', 'daily_mean', 'daily_max', 'daily_max8', 'mean', 'sum')


def is_valid(data):
    """
    False where data is NaN, infinite, or the IOAPI missing value
    """
    data = np.asarray(data)
    return np.isfinite(data) & (data > AMISS3)


def _missing(shape):
    return np.full(shape, BADVAL3, dtype='d')


def daily_mean(data):
    """
    Arguments
    ---------
    data : array
        (TSTEP, ...) samples with BADVAL3 or NaN for missing

    Returns
    -------
    out : array
        (...) mean of valid samples; BADVAL3 where no sample is valid
    """
    data = np.asarray(data, dtype='d')
    valid = is_valid(data)
    n = valid.sum(0)
    total = np.where(valid, data, 0).sum(0)
    return np.where(n > 0, total / np.maximum(n, 1), BADVAL3)


def daily_max(data):
    """
    Arguments
    ---------
    data : array
        (TSTEP, ...) samples with BADVAL3 or NaN for missing

    Returns
    -------
    out : array
        (...) maximum valid sample; BADVAL3 where no sample is valid
    """
    data = np.asarray(data, dtype='d')
    if data.shape[0] == 0:
        return _missing(data.shape[1:])
    valid = is_valid(data)
    out = np.where(valid, data, -np.inf).max(0)
    return np.where(valid.any(0), out, BADVAL3)


def daily_max8(data, window=8):
    """
    Maximum of 8-hour running means. Windows start at i in [0, TSTEP - 8),
    so 9 hourly samples yield one window. Each window is the mean of its
    valid samples; windows with no valid sample never win.

    Arguments
    ---------
    data : array
        (TSTEP, ...) hourly samples with BADVAL3 or NaN for missing
    window : int
        Number of samples averaged

    Returns
    -------
    out : array
        (...) maximum window mean; BADVAL3 if TSTEP <= window or no window
        has a valid sample
    """
    data = np.asarray(data, dtype='d')
    nwindows = data.shape[0] - window
    if nwindows <= 0:
        return _missing(data.shape[1:])
    from numpy.lib.stride_tricks import sliding_window_view
    valid = is_valid(data)
    vals = np.where(valid, data, 0)
    sums = sliding_window_view(vals, window, axis=0)[:nwindows].sum(-1)
    counts = sliding_window_view(valid, window, axis=0)[:nwindows].sum(-1)
    means = np.where(counts > 0, sums / np.maximum(counts, 1), -np.inf)
    out = means.max(0)
    return np.where(np.isfinite(out), out, BADVAL3)


daily_funcs = {
    'daily_mean': daily_mean,
    'daily_max': daily_max,
    'daily_max8': daily_max8,
}


def _cell_chunks(ncells, nworkers):
    nchunks = max(1, min(int(nworkers), ncells))
    bounds = np.linspace(0, ncells, nchunks + 1).astype('i')
    return [slice(s, e) for s, e in zip(bounds[:-1], bounds[1:])]


def _by_cells(func, data2d, nworkers):
    """
    Apply func to contiguous chunks of the cell (second) axis of data2d.
    Every chunk keeps the whole time axis.
    """
    ncells = data2d.shape[1]
    if nworkers is None or nworkers <= 1 or ncells < 2:
        return func(data2d)
    from concurrent.futures import ThreadPoolExecutor
    chunks = _cell_chunks(ncells, nworkers)
    with ThreadPoolExecutor(max_workers=len(chunks)) as executor:
        outs = list(executor.map(lambda sl: func(data2d[:, sl]), chunks))
    return np.concatenate(outs, axis=0)


class RunningAggregate:
    """
    Incremental per-cell mean or sum across repeated update calls (e.g., one
    call per input file). Only valid samples are accumulated.

    Arguments
    ---------
    shape : tuple
        Cell shape (e.g., (LAY, ROW, COL))
    mode : str
        'mean' or 'sum'
    """
    def __init__(self, shape, mode='mean'):
        if mode not in ('mean', 'sum'):
            raise InvalidParameter('mode', f'{mode} must be mean or sum')
        self.mode = mode
        self.shape = tuple(shape)
        self.result = np.zeros(self.shape, dtype='d')
        self.counts = np.zeros(self.shape, dtype='i8')

    def __repr__(self):
        return (
            f'RunningAggregate({self.shape}, {self.mode!r},'
            + f' nmax={self.counts.max() if self.counts.size else 0})'
        )

    def _update(self, block, result, counts):
        # block (TSTEP, ncells); result, counts (ncells) views of the state
        for vals in block:
            valid = is_valid(vals)
            counts += valid
            if self.mode == 'mean':
                delta = np.where(
                    valid, (vals - result) / np.maximum(counts, 1), 0
                )
                result += delta
            else:
                result += np.where(valid, vals, 0)

    def update(self, block, nworkers=1):
        """
        Arguments
        ---------
        block : array
            (TSTEP,) + shape, or shape for a single timestep
        nworkers : int
            Threads over contiguous chunks of cells

        Returns
        -------
        self
        """
        block = np.asarray(block, dtype='d')
        if block.shape == self.shape:
            block = block[None]
        if block.shape[1:] != self.shape:
            raise InvalidParameter(
                'block', f'shape {block.shape} does not end with {self.shape}'
            )
        block2d = block.reshape(block.shape[0], -1)
        result = self.result.reshape(-1)
        counts = self.counts.reshape(-1)
        ncells = result.size
        if nworkers is None or nworkers <= 1 or ncells < 2:
            self._update(block2d, result, counts)
            return self
        from concurrent.futures import ThreadPoolExecutor

        def work(sl):
            self._update(block2d[:, sl], result[sl], counts[sl])

        chunks = _cell_chunks(ncells, nworkers)
        with ThreadPoolExecutor(max_workers=len(chunks)) as executor:
            list(executor.map(work, chunks))
        return self

    @property
    def values(self):
        """Mean or sum by cell; BADVAL3 where no valid sample was seen"""
        return np.where(self.counts > 0, self.result, BADVAL3)


def aggregate(data, mode, state=None, nworkers=1):
    """
    Reduce the time axis of data.

    Arguments
    ---------
    data : array
        (TSTEP, ...) samples with BADVAL3 or NaN for missing
    mode : str
        none, daily_mean, daily_max, daily_max8, mean, or sum
    state : RunningAggregate or None
        For mean and sum, the caller-owned state that is updated; if None, a
        new state is used for data alone.
    nworkers : int
        Threads over contiguous chunks of cells; time is never split.

    Returns
    -------
    out : array
        data for none; otherwise the (...) reduced values
    """
    if mode not in modes:
        raise InvalidParameter('mode', f'{mode} not in {modes}')
    data = np.asarray(data)
    if mode == 'none':
        return data
    if data.ndim < 1:
        raise InvalidParameter('data', 'must have a time axis')
    cellshape = data.shape[1:]
    if mode in daily_funcs:
        data2d = np.asarray(data, dtype='d').reshape(data.shape[0], -1)
        out = _by_cells(daily_funcs[mode], data2d, nworkers)
        return out.reshape(cellshape)
    if state is None:
        state = RunningAggregate(cellshape, mode)
    elif state.mode != mode:
        raise InvalidParameter(
            'state', f'state mode {state.mode} does not match {mode}'
        )
    state.update(data, nworkers=nworkers)
    return state.values
